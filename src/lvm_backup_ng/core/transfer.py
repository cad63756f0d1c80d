"""Backup transfer: archive or mirror a mounted snapshot.

Both strategies run one supervised child process whose pid is registered
for cancellation while the main flow blocks waiting for it.
"""

from __future__ import annotations

import enum
import logging
import shlex
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .. import __util__
from ..transaction import log_transaction
from .cleanup import CleanupRegistry, TerminateProcessTree

logger = logging.getLogger(__name__)

LOST_AND_FOUND = "lost+found"


class TransferMode(enum.Enum):
    ARCHIVE = "archive"
    MIRROR = "mirror"


@dataclass
class BackupTask:
    """One transfer of a mounted directory to its destination."""

    source: str
    destination: str
    mode: TransferMode
    pid: Optional[int] = None


def build_archive_cmd(source_dir, target, compression_flag=None) -> list[str]:
    """tar argument vector archiving the contents of ``source_dir``."""
    cmd = ["tar", "--exclude", f"./{LOST_AND_FOUND}", "-C", str(source_dir), "-c"]
    if compression_flag:
        cmd.append(compression_flag)
    cmd += ["-f", str(target), "."]
    return cmd


def build_mirror_cmd(template: str, source_dir, dest_dir) -> list[str]:
    """Argument vector from a mirror template.

    The {src} and {dest} placeholders are replaced by shell-quoted paths
    before the template is split, so paths always end up as single words.
    """
    command = template.replace("{src}", shlex.quote(str(source_dir))).replace(
        "{dest}", shlex.quote(str(dest_dir))
    )
    try:
        argv = shlex.split(command)
    except ValueError as e:
        raise __util__.ConfigError(f"Invalid mirror command {template!r}: {e}")
    if not argv:
        raise __util__.ConfigError("The mirror command must not be empty")
    return argv


def required_tools(config) -> list[str]:
    """Programs the configured transfer strategy needs."""
    if config.mirror:
        return [build_mirror_cmd(config.mirror_command, "src", "dest")[0]]
    return ["tar"]


class TransferDispatcher:
    """Runs the configured archive or mirror strategy."""

    def __init__(self, host, registry: CleanupRegistry, config) -> None:
        self.host = host
        self.registry = registry
        self.config = config

    @property
    def mode(self) -> TransferMode:
        return TransferMode.MIRROR if self.config.mirror else TransferMode.ARCHIVE

    def run(self, source_dir: str, destination: str) -> str:
        """Transfer ``source_dir`` to ``destination`` and return the produced path."""
        if self.mode is TransferMode.MIRROR:
            target = self._prepare_mirror(destination)
            cmd = build_mirror_cmd(self.config.mirror_command, source_dir, target)
        else:
            target = self._prepare_archive(destination)
            cmd = build_archive_cmd(
                source_dir, target, self.config.tar_compression_flag
            )

        task = BackupTask(source=source_dir, destination=target, mode=self.mode)
        kind = "directory" if task.mode is TransferMode.MIRROR else "file"
        logger.info("Backup to %s %s", kind, target)
        self._execute(task, cmd)
        return target

    def _prepare_archive(self, destination: str) -> str:
        target = f"{destination}{self.config.archive_extension}"
        path = Path(target)
        if path.exists() or path.is_symlink():
            if not self.config.overwrite:
                raise __util__.DestinationExistsError(f"File {target} already exists")
            logger.info("Delete old backup file %s", target)
            try:
                path.unlink()
            except OSError as e:
                raise __util__.TransferError(f"Could not delete {target}: {e}") from e
        return target

    def _prepare_mirror(self, destination: str) -> str:
        path = Path(destination)
        if not path.is_dir():
            logger.info("Creating mirror directory: %s", path)
            try:
                path.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise __util__.TransferError(
                    f"Could not create mirror directory {path}: {e}"
                ) from e
        return destination

    def _execute(self, task: BackupTask, cmd: list[str]) -> None:
        start = time.monotonic()
        with self.registry.holding_signals():
            try:
                process = self.host.spawn(cmd)
            except subprocess.CalledProcessError as e:
                raise __util__.TransferError(
                    f"Could not start {cmd[0]}: {e.stderr or e}"
                ) from e

            task.pid = process.pid
            action = self.registry.register(
                TerminateProcessTree(
                    process.pid,
                    grace=self.config.kill_grace_seconds,
                    poll_interval=self.config.poll_interval,
                )
            )
        logger.debug("Backup process %d: %s", process.pid, cmd)
        returncode = process.wait()
        self.registry.deregister(action)

        duration = time.monotonic() - start
        if returncode != 0:
            log_transaction(
                action="transfer",
                status="failed",
                destination=task.destination,
                duration_seconds=duration,
                error=f"{cmd[0]} exited with {returncode}",
            )
            raise __util__.TransferError(
                f"{cmd[0]} failed with return code {returncode} "
                f"while backing up to {task.destination}"
            )
        log_transaction(
            action="transfer",
            status="completed",
            destination=task.destination,
            duration_seconds=duration,
            details={"mode": task.mode.value, "source": task.source},
        )
