"""Core run drivers: full backup run and remnant cleanup.

Volumes are processed strictly one after another inside one cleanup
supervisor, so a failure or signal at any point tears down exactly the
resources that are still held.
"""

from __future__ import annotations

import contextlib
import logging
import time
from dataclasses import dataclass, field
from typing import Optional

from filelock import FileLock, Timeout

from .. import __util__
from ..lvm import Volume, evaluate, list_volumes
from .cleanup import CleanupRegistry, CleanupSupervisor
from .lifecycle import SnapshotLifecycle
from .partitions import PartitionMounter
from .transfer import TransferDispatcher

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """Summary of a backup run.

    Attributes:
        backed_up: Volumes whose snapshot was backed up and removed
        skipped: (volume, reason) for volumes not snapshotted
        outputs: Archive files or mirror directories produced
        mount_failures: (device, message) of ignored mount errors
        removed_remnants: Leftover snapshots removed before the run
    """

    backed_up: list[str] = field(default_factory=list)
    skipped: list[tuple[str, Optional[str]]] = field(default_factory=list)
    outputs: list[str] = field(default_factory=list)
    mount_failures: list[tuple[str, str]] = field(default_factory=list)
    removed_remnants: list[str] = field(default_factory=list)


@contextlib.contextmanager
def run_lock(config):
    """Hold the host-wide run lock, aborting if another run holds it."""
    if not config.lock_file:
        yield
        return
    lock = FileLock(config.lock_file, timeout=0)
    try:
        with lock:
            yield
    except Timeout:
        raise __util__.AbortError(
            f"Another run holds the lock file {config.lock_file}"
        )


def _log_skip(volume: Volume, decision, config) -> None:
    if decision.reason is not None:
        logger.info("%s", decision.describe(volume))
    elif volume.full_name in config.exclude:
        logger.info("%s", decision.describe(volume))
    else:
        logger.debug("Volume %s not selected for backup", volume.full_name)


def remove_remnants(
    host, config, registry: Optional[CleanupRegistry] = None
) -> list[Volume]:
    """Remove backup snapshots left over by an interrupted run."""
    registry = registry if registry is not None else CleanupRegistry()
    with run_lock(config), CleanupSupervisor(host, registry):
        logger.info(__util__.log_heading("Cleanup old snapshots"))
        lifecycle = SnapshotLifecycle(host, registry, config)
        removed = lifecycle.cleanup_remnants(list_volumes(host))
    logger.info("Removed %d old snapshot(s)", len(removed))
    return removed


def run_backup(host, config, registry: Optional[CleanupRegistry] = None) -> RunResult:
    """Snapshot, back up and remove every eligible volume."""
    registry = registry if registry is not None else CleanupRegistry()
    result = RunResult()

    with run_lock(config), CleanupSupervisor(host, registry):
        logger.info(__util__.log_heading(f"Started at {time.ctime()}"))
        lifecycle = SnapshotLifecycle(host, registry, config)
        dispatcher = TransferDispatcher(host, registry, config)
        mounter = PartitionMounter(host, registry, config, dispatcher)

        if config.cleanup_remnants_first:
            logger.info(__util__.log_heading("Cleanup old snapshots"))
            removed = lifecycle.cleanup_remnants(list_volumes(host))
            result.removed_remnants = [v.full_name for v in removed]

        volumes = list_volumes(host)
        for volume in volumes:
            decision = evaluate(
                volume, config.include, config.exclude, config.snapshot_prefix
            )
            if not decision.should_snapshot:
                _log_skip(volume, decision, config)
                result.skipped.append((volume.full_name, decision.reason))
                continue

            logger.info(__util__.log_heading(f"Backup {volume.full_name}"))

            def step(record, volume=volume):
                return mounter.backup_device(record.path, volume.group, volume.name)

            _, outputs = lifecycle.process(volume, step)
            result.outputs.extend(outputs)
            result.backed_up.append(volume.full_name)

        result.mount_failures = list(mounter.failures)

    logger.info(__util__.log_heading(f"Finished at {time.ctime()}"))
    if result.mount_failures:
        logger.warning(
            "Backup finished with %d ignored mount error(s)", len(result.mount_failures)
        )
    else:
        logger.info("Backup finished: %d volume(s)", len(result.backed_up))
    return result
