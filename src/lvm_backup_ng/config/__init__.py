"""Configuration system for lvm-backup-ng.

This module provides TOML-based configuration loading, validation,
and schema definitions for backup runs.
"""

from ..__util__ import ConfigError
from .loader import (
    find_config_file,
    load_config,
    prepare_dest_prefix,
    validate_config,
)
from .schema import BackupConfig

__all__ = [
    "BackupConfig",
    "load_config",
    "find_config_file",
    "prepare_dest_prefix",
    "validate_config",
    "ConfigError",
]
