"""lvm-backup-ng: lvm_backup_ng/__init__.py."""

__version__ = "0.3.0"


def split_volume_name(full_name: str) -> tuple[str, str]:
    """Split 'VOLUME_GROUP/VOLUME_NAME' into its two parts.

    Raises ValueError when the name is not in that format.
    """
    parts = full_name.split("/")
    if len(parts) != 2 or not all(parts):
        raise ValueError(
            f"Volume name '{full_name}' must be in format VOLUME_GROUP/VOLUME_NAME"
        )
    return parts[0], parts[1]
