"""Shared CLI utilities and argument parsers."""

import argparse

from .. import split_volume_name


def add_verbosity_args(parser: argparse.ArgumentParser) -> None:
    """Add verbosity-related arguments to a parser."""
    group = parser.add_argument_group("Output options")
    group.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose output",
    )
    group.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Suppress non-essential output",
    )
    group.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Enable debug output",
    )
    group.add_argument(
        "--log-file",
        metavar="FILE",
        help="Log all output and errors to the specified log file",
    )


def get_log_level(args: argparse.Namespace) -> str:
    """Determine log level from parsed arguments.

    Args:
        args: Parsed command line arguments

    Returns:
        Log level string (DEBUG, INFO, WARNING, ERROR)
    """
    if getattr(args, "debug", False):
        return "DEBUG"
    elif getattr(args, "quiet", False):
        return "WARNING"
    elif getattr(args, "verbose", False):
        return "DEBUG"
    else:
        return "INFO"


def volume_name(value: str) -> str:
    """argparse type for VOLUME_GROUP/VOLUME_NAME arguments."""
    try:
        split_volume_name(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))
    return value
