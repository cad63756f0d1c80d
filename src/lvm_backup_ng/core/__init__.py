"""Core backup operations for lvm-backup-ng.

Snapshot lifecycle, partition mounting, transfer and the cleanup
supervisor that ties them together.
"""

from .cleanup import CleanupRegistry, CleanupSupervisor
from .lifecycle import SnapshotLifecycle, SnapshotRecord, SnapshotState
from .operations import RunResult, remove_remnants, run_backup
from .partitions import PartitionMounter
from .transfer import TransferDispatcher, TransferMode

__all__ = [
    "CleanupRegistry",
    "CleanupSupervisor",
    "SnapshotLifecycle",
    "SnapshotRecord",
    "SnapshotState",
    "PartitionMounter",
    "TransferDispatcher",
    "TransferMode",
    "RunResult",
    "run_backup",
    "remove_remnants",
]
