# pyright: standard

"""lvm-backup-ng: lvm_backup_ng/__util__.py
Common utility code shared between modules.
"""

import logging
import os
import subprocess

logger = logging.getLogger(__name__)


class AbortError(Exception):
    """Exception where the run has to be aborted."""


class ConfigError(AbortError):
    """Configuration loading or validation error."""


class InventoryError(AbortError):
    """The volume listing could not be obtained or parsed."""


class SnapshotError(AbortError):
    """Creating or removing a snapshot failed."""


class PartitionError(AbortError):
    """The partitions of a snapshot device could not be listed or mapped."""


class MountError(AbortError):
    """A snapshot device or partition could not be mounted."""


class TransferError(AbortError):
    """The archive or mirror command failed."""


class DestinationExistsError(TransferError):
    """The destination file exists and overwriting is disabled."""


class BackupInterrupted(AbortError):
    """The run received SIGINT or SIGTERM."""

    def __init__(self, signum: int) -> None:
        super().__init__(f"Interrupted by signal {signum}")
        self.signum = signum


def exec_subprocess(command, method="run", **kwargs):
    """Executes ``command`` using the given ``method`` of module subprocess.

    With ``method="run"`` a non-zero exit raises CalledProcessError unless
    ``check=False`` is passed. OSError (missing program) is re-raised as
    CalledProcessError with return code 127, so callers only need one
    except clause.
    """
    kwargs.setdefault("text", True)
    if method == "run":
        kwargs.setdefault("check", True)
        kwargs.setdefault("stdout", subprocess.PIPE)
        kwargs.setdefault("stderr", subprocess.PIPE)
    logger.debug("Executing: %s", command)
    try:
        return getattr(subprocess, method)(command, **kwargs)
    except OSError as e:
        logger.debug("Could not execute %s: %s", command[0], e)
        raise subprocess.CalledProcessError(127, command, stderr=str(e)) from e


def log_heading(caption: str) -> str:
    """Formatted heading for logging output sections."""
    return f"--[ {caption} ]--------"


def is_root() -> bool:
    """Whether the process runs with root-equivalent privileges."""
    return os.geteuid() == 0


def check_root() -> None:
    """Abort unless running as root."""
    if not is_root():
        raise AbortError("You must run this tool as root")


def format_size(size: int) -> str:
    """Human readable binary size."""
    value = float(size)
    for unit in ("B", "KiB", "MiB", "GiB", "TiB"):
        if value < 1024 or unit == "TiB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
