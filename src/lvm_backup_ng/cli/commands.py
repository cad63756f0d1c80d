"""Command executors: list volumes, remnant cleanup and backup runs."""

import argparse
import dataclasses
import logging

from rich.console import Console
from rich.table import Table

from .. import __util__
from ..__logger__ import create_logger
from ..config import (
    BackupConfig,
    ConfigError,
    find_config_file,
    load_config,
    prepare_dest_prefix,
    validate_config,
)
from ..config.loader import generate_example_config
from ..core import remove_remnants, run_backup
from ..core.transfer import required_tools
from ..host import Host
from ..lvm import describe_attributes, list_volumes
from ..transaction import set_transaction_log
from .common import get_log_level

logger = logging.getLogger(__name__)

# argparse dest -> BackupConfig field, for options that override the file
OVERRIDABLE = (
    "include",
    "exclude",
    "snapshot_prefix",
    "part_rw",
    "overwrite",
    "dest_prefix",
    "compression",
    "mirror",
    "mirror_command",
    "ignore_mount_errors",
    "cleanup_remnants_first",
    "mount_root",
    "lock_file",
    "transaction_log",
    "log_file",
)


def build_config(args: argparse.Namespace) -> BackupConfig:
    """Configuration file values overridden by command line values."""
    config_path = find_config_file(getattr(args, "config", None))
    if config_path is not None:
        logger.info("Loading configuration from: %s", config_path)
        config = load_config(config_path)
    else:
        config = BackupConfig()

    overrides = {
        name: getattr(args, name)
        for name in OVERRIDABLE
        if getattr(args, name, None) is not None
    }
    config = dataclasses.replace(config, **overrides)
    validate_config(config)
    return config


def execute_list(host, config: BackupConfig, verbose=False) -> int:
    """Print the logical volumes and their decoded attributes."""
    volumes = list_volumes(host)

    table = Table(title="Logical volumes")
    table.add_column("Volume group")
    table.add_column("Volume")
    table.add_column("Size", justify="right")
    table.add_column("Attr")
    table.add_column("Origin")
    table.add_column("Type")
    table.add_column("State")
    for volume in volumes:
        facts = volume.facts
        table.add_row(
            volume.group,
            volume.name,
            __util__.format_size(volume.size),
            volume.attr,
            volume.origin,
            facts.volume_type,
            facts.state,
        )
    console = Console()
    console.print(table)

    if verbose:
        for volume in volumes:
            console.print(
                f"Logical volume: '{volume.name}', volume group: '{volume.group}'"
            )
            for line in describe_attributes(volume.attr):
                console.print(f"  {line}")
    return 0


def execute_cleanup(host, config: BackupConfig) -> int:
    """Remove leftover backup snapshots without backing anything up."""
    host.check_tools()
    removed = remove_remnants(host, config)
    for volume in removed:
        logger.info("Removed %s", volume.full_name)
    return 0


def execute_backup(host, config: BackupConfig) -> int:
    """Run a full backup."""
    config.dest_prefix = prepare_dest_prefix(config.dest_prefix)
    host.check_tools(extra=required_tools(config))
    run_backup(host, config)
    return 0


def execute(args: argparse.Namespace, host=None) -> int:
    """Dispatch parsed arguments to a command.

    Returns:
        Exit code (0 for success, 1 for any fatal condition)
    """
    if getattr(args, "example_config", False):
        print(generate_example_config(), end="")
        return 0

    try:
        config = build_config(args)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return 1

    if config.log_file and config.log_file != getattr(args, "log_file", None):
        create_logger(get_log_level(args), config.log_file)

    host = host or Host(lvm_debug=getattr(args, "debug", False))
    try:
        __util__.check_root()
        set_transaction_log(config.transaction_log)
        if getattr(args, "list_volumes", False):
            return execute_list(host, config, verbose=getattr(args, "verbose", False))
        if getattr(args, "cleanup_remnants", False):
            return execute_cleanup(host, config)
        return execute_backup(host, config)
    except __util__.AbortError as e:
        logger.error("%s", e)
        logger.error("Exiting ...")
        return 1
    finally:
        set_transaction_log(None)
