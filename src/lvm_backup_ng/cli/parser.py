"""Command line parser for lvm-backup-ng."""

import argparse

from ..config.schema import COMPRESSION_FORMATS, DEFAULT_SNAPSHOT_PREFIX
from .common import add_verbosity_args, volume_name


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser.

    Options that also exist in the configuration file default to None so
    that only values given on the command line override the file.
    """
    parser = argparse.ArgumentParser(
        prog="lvm-backup-ng",
        description="Backup LVM volumes through temporary snapshots",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "-V",
        "--version",
        action="store_true",
        help="Show version and exit",
    )
    parser.add_argument(
        "-c",
        "--config",
        metavar="FILE",
        help="Path to configuration file",
    )

    modes = parser.add_argument_group("Modes")
    mode = modes.add_mutually_exclusive_group()
    mode.add_argument(
        "-l",
        "--list-volumes",
        action="store_true",
        help="Print list of LVM volumes",
    )
    mode.add_argument(
        "--cleanup-remnants",
        action="store_true",
        help="Only remove backup snapshots left over by an interrupted run",
    )
    mode.add_argument(
        "--example-config",
        action="store_true",
        help="Print an example configuration file",
    )

    selection = parser.add_argument_group("Volume selection")
    selection.add_argument(
        "-b",
        "--backup-volume",
        dest="include",
        metavar="VG/LV",
        action="append",
        type=volume_name,
        help="Only back up this volume (repeatable)",
    )
    selection.add_argument(
        "-i",
        "--ignore-volume",
        dest="exclude",
        metavar="VG/LV",
        action="append",
        type=volume_name,
        help="Ignore volume specified in format VOLUME_GROUP/VOLUME_NAME (repeatable)",
    )
    selection.add_argument(
        "-s",
        "--snapshot-prefix",
        metavar="PREFIX",
        help=f"Prefix of backup snapshot names (default: {DEFAULT_SNAPSHOT_PREFIX})",
    )

    backup = parser.add_argument_group("Backup options")
    backup.add_argument(
        "-w",
        "--part-rw",
        action="store_true",
        default=None,
        help="Add partitions in read/write mode",
    )
    backup.add_argument(
        "--overwrite",
        action="store_true",
        default=None,
        help="Overwrite backup files",
    )
    backup.add_argument(
        "-p",
        "--dest-prefix",
        metavar="PREFIX",
        help="Destination file prefix (add / for directory)",
    )
    backup.add_argument(
        "--compression",
        choices=sorted(COMPRESSION_FORMATS),
        help="Archive compression (default: bz2)",
    )
    backup.add_argument(
        "-m",
        "--mirror",
        action="store_true",
        default=None,
        help="Mirror volumes into directories instead of creating archives",
    )
    backup.add_argument(
        "--mirror-cmd",
        dest="mirror_command",
        metavar="TEMPLATE",
        help="Mirror command with {src} and {dest} placeholders",
    )
    backup.add_argument(
        "--ignore-mount-error",
        dest="ignore_mount_errors",
        action="store_true",
        default=None,
        help="Ignore errors when mounting volumes and continue with other volumes",
    )
    backup.add_argument(
        "--no-remnant-cleanup",
        dest="cleanup_remnants_first",
        action="store_false",
        default=None,
        help="Do not remove leftover backup snapshots before the backup",
    )
    backup.add_argument(
        "--mount-root",
        metavar="DIR",
        help="Directory for temporary mount points (default: /tmp)",
    )
    backup.add_argument(
        "--lock-file",
        metavar="FILE",
        help="Lock file preventing concurrent runs",
    )
    backup.add_argument(
        "--transaction-log",
        metavar="FILE",
        help="Append JSON lines transaction records to FILE",
    )

    add_verbosity_args(parser)
    return parser
