# pyright: standard

"""lvm-backup-ng: lvm_backup_ng/host/__init__.py."""

from .common import Host, is_under, mapper_name

__all__ = ["Host", "is_under", "mapper_name"]
