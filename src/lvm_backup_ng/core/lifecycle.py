"""Snapshot lifecycle: create, back up and remove one snapshot per volume."""

from __future__ import annotations

import enum
import logging
import subprocess
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from .. import __util__
from ..host import is_under, mapper_name
from ..lvm import Volume, describe_attributes
from ..transaction import log_transaction
from .cleanup import CleanupRegistry, RemoveSnapshot, remove_with_fallback

logger = logging.getLogger(__name__)


class SnapshotState(enum.Enum):
    REQUESTED = "requested"
    CREATED = "created"
    BACKUP_IN_PROGRESS = "backup in progress"
    BACKED_UP = "backed up"
    REMOVED = "removed"
    ORPHANED = "orphaned"


# Allowed transitions of the per volume state machine
TRANSITIONS = {
    SnapshotState.REQUESTED: {SnapshotState.CREATED},
    SnapshotState.CREATED: {
        SnapshotState.BACKUP_IN_PROGRESS,
        SnapshotState.REMOVED,
        SnapshotState.ORPHANED,
    },
    SnapshotState.BACKUP_IN_PROGRESS: {SnapshotState.BACKED_UP},
    SnapshotState.BACKED_UP: {SnapshotState.REMOVED, SnapshotState.ORPHANED},
    SnapshotState.REMOVED: set(),
    SnapshotState.ORPHANED: set(),
}


@dataclass
class SnapshotRecord:
    """A backup snapshot of ``source`` and where it is in its lifecycle."""

    source: Volume
    name: str
    state: SnapshotState = SnapshotState.REQUESTED
    path: Optional[str] = None
    history: list[SnapshotState] = field(default_factory=list)

    @property
    def group(self) -> str:
        return self.source.group

    @property
    def full_name(self) -> str:
        return f"{self.group}/{self.name}"

    def advance(self, state: SnapshotState) -> None:
        if state not in TRANSITIONS[self.state]:
            raise ValueError(
                f"Invalid snapshot transition {self.state.name} -> {state.name}"
            )
        logger.debug("%s: %s -> %s", self.full_name, self.state.value, state.value)
        self.history.append(self.state)
        self.state = state


class SnapshotLifecycle:
    """Drives create -> backup -> remove for eligible volumes."""

    def __init__(self, host, registry: CleanupRegistry, config) -> None:
        self.host = host
        self.registry = registry
        self.config = config
        self._actions: dict[int, RemoveSnapshot] = {}

    def snapshot_name(self, volume: Volume) -> str:
        return f"{self.config.snapshot_prefix}{volume.name}"

    def create(self, volume: Volume) -> SnapshotRecord:
        """Create the snapshot of ``volume``.

        The removal is registered before lvcreate runs, so a crash or signal
        during creation still removes the snapshot by name.
        """
        record = SnapshotRecord(source=volume, name=self.snapshot_name(volume))
        action = self.registry.register(RemoveSnapshot(record.name, record.group))
        self._actions[id(record)] = action

        thin = volume.facts.is_thin_type
        logger.info(
            "Create %ssnapshot %s", "thin " if thin else "", record.full_name
        )
        for line in describe_attributes(volume.attr):
            logger.debug("  %s", line)

        try:
            self.host.create_snapshot(volume.path, record.name, thin=thin)
            record.path = self.host.lv_path(record.name, record.group)
        except subprocess.CalledProcessError as e:
            log_transaction(
                action="snapshot",
                status="failed",
                volume=volume.full_name,
                snapshot=record.full_name,
                error=str(e.stderr or e),
            )
            raise __util__.SnapshotError(
                f"Could not create snapshot {record.full_name}: {e.stderr or e}"
            ) from e

        action.path = record.path
        record.advance(SnapshotState.CREATED)
        log_transaction(
            action="snapshot",
            status="completed",
            volume=volume.full_name,
            snapshot=record.full_name,
            details={"path": record.path, "thin": thin},
        )
        return record

    def backup(self, record: SnapshotRecord, step: Callable[[SnapshotRecord], object]):
        """Run the backup ``step`` against the created snapshot."""
        record.advance(SnapshotState.BACKUP_IN_PROGRESS)
        result = step(record)
        record.advance(SnapshotState.BACKED_UP)
        return result

    def _forget(self, action) -> None:
        if action is not None:
            self.registry.deregister(action)

    def remove(self, record: SnapshotRecord) -> None:
        """Remove the snapshot, unmapping leftover partitions on failure.

        An interrupted removal stays registered for the supervisor.
        """
        action = self._actions.pop(id(record), None)
        target = record.path or record.full_name
        logger.info("Remove snapshot %s", target)
        start = time.monotonic()
        try:
            remove_with_fallback(
                self.host, target, record.path or f"/dev/{record.full_name}"
            )
        except subprocess.CalledProcessError as e:
            self._forget(action)
            record.advance(SnapshotState.ORPHANED)
            log_transaction(
                action="remove",
                status="failed",
                volume=record.source.full_name,
                snapshot=record.full_name,
                error=str(e.stderr or e),
            )
            raise __util__.SnapshotError(
                f"Could not remove snapshot {target}: {e.stderr or e}"
            ) from e

        self._forget(action)
        record.advance(SnapshotState.REMOVED)
        log_transaction(
            action="remove",
            status="completed",
            volume=record.source.full_name,
            snapshot=record.full_name,
            duration_seconds=time.monotonic() - start,
        )

    def process(self, volume: Volume, step: Callable[[SnapshotRecord], object]):
        """Create, back up and remove the snapshot of ``volume``.

        If the step fails, removal is left to the cleanup supervisor which
        unmounts and unmaps first.
        """
        record = self.create(volume)
        result = self.backup(record, step)
        self.remove(record)
        return record, result

    def is_remnant(self, volume: Volume) -> bool:
        """Whether ``volume`` is a leftover backup snapshot of an earlier run."""
        return (volume.facts.is_cow or bool(volume.origin)) and volume.name.startswith(
            self.config.snapshot_prefix
        )

    def _mount_points_of(self, volume: Volume) -> list[str]:
        node = mapper_name(volume.group, volume.name)
        mount_points = []
        for source, mount_point in self.host.mount_points():
            if source.startswith(f"/dev/mapper/{node}") or (
                volume.path and self.host.same_device(source, volume.path)
            ):
                mount_points.append(mount_point)
        return mount_points

    def cleanup_remnants(self, volumes: list[Volume]) -> list[Volume]:
        """Unmount and remove backup snapshots left by an interrupted run."""
        removed = []
        for volume in volumes:
            if not (volume.facts.is_cow or volume.origin):
                continue
            logger.debug("Check snapshot %s", volume.full_name)
            if not self.is_remnant(volume):
                continue

            for mount_point in self._mount_points_of(volume):
                logger.info("Unmount leftover mount point %s", mount_point)
                try:
                    self.host.unmount(mount_point)
                except subprocess.CalledProcessError as e:
                    raise __util__.MountError(
                        f"Could not unmount {mount_point}: {e.stderr or e}"
                    ) from e
                if is_under(mount_point, self.config.mount_root):
                    self.host.remove_mount_dir(mount_point)

            target = volume.path or volume.full_name
            logger.info("Remove old snapshot %s", target)
            try:
                remove_with_fallback(
                    self.host, target, volume.path or f"/dev/{volume.full_name}"
                )
            except subprocess.CalledProcessError as e:
                raise __util__.SnapshotError(
                    f"Could not remove old snapshot {target}: {e.stderr or e}"
                ) from e
            log_transaction(
                action="remove_remnant",
                status="completed",
                volume=volume.origin or None,
                snapshot=volume.full_name,
            )
            removed.append(volume)
        return removed
