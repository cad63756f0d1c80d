"""Command line interface for lvm-backup-ng."""

from .commands import build_config, execute
from .parser import create_parser

__all__ = ["build_config", "create_parser", "execute"]
