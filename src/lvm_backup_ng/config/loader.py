"""TOML configuration loading and validation.

Handles config file discovery, parsing, and validation with helpful error messages.
"""

import logging
import tomllib
from dataclasses import fields
from pathlib import Path
from typing import Any

from .. import split_volume_name
from ..__util__ import ConfigError
from .schema import COMPRESSION_FORMATS, BackupConfig

logger = logging.getLogger(__name__)

# Config file search paths in priority order
CONFIG_PATHS = [
    Path.home() / ".config" / "lvm-backup-ng" / "config.toml",
    Path("/etc/lvm-backup-ng/config.toml"),
]

_LIST_FIELDS = {"include", "exclude"}
_BOOL_FIELDS = {
    "part_rw",
    "overwrite",
    "mirror",
    "ignore_mount_errors",
    "cleanup_remnants_first",
}
_FLOAT_FIELDS = {"kill_grace_seconds", "poll_interval"}


def find_config_file(explicit_path: str | None = None) -> Path | None:
    """Find configuration file.

    Args:
        explicit_path: Explicitly specified config path (highest priority)

    Returns:
        Path to config file, or None if not found
    """
    if explicit_path:
        path = Path(explicit_path)
        if path.exists():
            return path
        raise ConfigError(f"Config file not found: {explicit_path}")

    for path in CONFIG_PATHS:
        if path.exists():
            return path

    return None


def _parse_backup(data: dict[str, Any]) -> BackupConfig:
    """Parse the [backup] table into a BackupConfig."""
    known = {f.name for f in fields(BackupConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown option(s) in [backup]: {', '.join(unknown)}")

    values: dict[str, Any] = {}
    for key, value in data.items():
        if key in _LIST_FIELDS:
            if not isinstance(value, list) or not all(
                isinstance(v, str) for v in value
            ):
                raise ConfigError(f"'{key}' must be a list of strings")
        elif key in _BOOL_FIELDS:
            if not isinstance(value, bool):
                raise ConfigError(f"'{key}' must be true or false")
        elif key in _FLOAT_FIELDS:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigError(f"'{key}' must be a number")
            value = float(value)
        elif not isinstance(value, str):
            raise ConfigError(f"'{key}' must be a string")
        values[key] = value
    return BackupConfig(**values)


def validate_config(config: BackupConfig) -> None:
    """Validate configuration, raising ConfigError on the first problem."""
    if not config.snapshot_prefix:
        raise ConfigError("The snapshot prefix must not be empty")
    if "/" in config.snapshot_prefix:
        raise ConfigError("The snapshot prefix must not contain '/'")

    for volume in [*config.include, *config.exclude]:
        try:
            split_volume_name(volume)
        except ValueError as e:
            raise ConfigError(str(e))

    if config.compression not in COMPRESSION_FORMATS:
        raise ConfigError(
            f"Unknown compression '{config.compression}', expected one of: "
            f"{', '.join(COMPRESSION_FORMATS)}"
        )

    if config.mirror:
        for placeholder in ("{src}", "{dest}"):
            if placeholder not in config.mirror_command:
                raise ConfigError(
                    f"Mirror command must contain the {placeholder} placeholder"
                )

    if config.kill_grace_seconds < 0:
        raise ConfigError("kill_grace_seconds must not be negative")
    if config.poll_interval <= 0:
        raise ConfigError("poll_interval must be positive")


def prepare_dest_prefix(dest_prefix: str) -> str:
    """Normalize the destination prefix.

    An empty prefix means the current directory. A trailing '/' denotes a
    directory which is created when missing; an existing directory given
    without the trailing '/' gets one appended.
    """
    if not dest_prefix:
        dest_prefix = "./"
    path = Path(dest_prefix)
    if dest_prefix.endswith("/"):
        if not path.is_dir():
            logger.info("Creating destination directory: %s", path)
            try:
                path.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ConfigError(f"Cannot create destination directory {path}: {e}")
    elif path.is_dir():
        dest_prefix += "/"
    return dest_prefix


def load_config(path: Path | str) -> BackupConfig:
    """Load and validate configuration from TOML file.

    Args:
        path: Path to configuration file

    Returns:
        BackupConfig object

    Raises:
        ConfigError: If config is invalid or cannot be parsed
    """
    path = Path(path)

    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML syntax: {e}")
    except OSError as e:
        raise ConfigError(f"Cannot read config file: {e}")

    config = _parse_backup(data.get("backup", {}))
    validate_config(config)
    return config


def generate_example_config() -> str:
    """Generate example configuration file content."""
    return """# lvm-backup-ng configuration

[backup]
snapshot_prefix = "xsnap_"
dest_prefix = "/mnt/backup/lvm/"
compression = "bz2"
overwrite = false

# Only back up these volumes (empty = all eligible volumes)
include = []
# Never back up these volumes
exclude = ["vg0/swap"]

# Map partitions read-write (e.g. to replay a journal)
part_rw = false
ignore_mount_errors = false

# Mirror instead of archiving
# mirror = true
# mirror_command = "rsync -aHAX --delete --exclude=/lost+found {src}/ {dest}/"

# log_file = "/var/log/lvm-backup-ng.log"
# transaction_log = "/var/log/lvm-backup-ng.transactions.jsonl"
"""
