"""Configuration schema definitions using dataclasses.

Defines every run option with sensible defaults.
"""

from dataclasses import dataclass, field
from typing import Optional

DEFAULT_SNAPSHOT_PREFIX = "xsnap_"
DEFAULT_MIRROR_COMMAND = "rsync -aHAX --delete --exclude=/lost+found {src}/ {dest}/"
DEFAULT_LOCK_FILE = "/run/lock/lvm-backup-ng.lock"

# Compression name -> (tar flag, file extension)
COMPRESSION_FORMATS = {
    "none": (None, ""),
    "gz": ("-z", "gz"),
    "bz2": ("-j", "bz2"),
    "xz": ("-J", "xz"),
    "zst": ("--zstd", "zst"),
}


@dataclass
class BackupConfig:
    """Run configuration.

    Attributes:
        snapshot_prefix: Prefix of backup snapshot names, must not be empty
        include: Only back up these VOLUME_GROUP/VOLUME_NAME volumes
        exclude: Never back up these VOLUME_GROUP/VOLUME_NAME volumes
        part_rw: Map partitions read-write instead of read-only
        overwrite: Replace existing archive files
        dest_prefix: Destination prefix, a trailing '/' denotes a directory
        mirror: Mirror mounted contents instead of archiving them
        mirror_command: Mirror command template with {src} and {dest}
        compression: Archive compression (none, gz, bz2, xz, zst)
        ignore_mount_errors: Log mount failures and continue
        cleanup_remnants_first: Remove leftover backup snapshots before a run
        mount_root: Directory for temporary mount points
        lock_file: Lock file serializing runs on this host
        kill_grace_seconds: Wait between SIGINT and SIGTERM on cancellation
        poll_interval: Poll interval while waiting for cancelled processes
        transaction_log: JSON-lines transaction log path (None disables)
        log_file: Path to log file (None for no file logging)
    """

    snapshot_prefix: str = DEFAULT_SNAPSHOT_PREFIX
    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)
    part_rw: bool = False
    overwrite: bool = False
    dest_prefix: str = "./"
    mirror: bool = False
    mirror_command: str = DEFAULT_MIRROR_COMMAND
    compression: str = "bz2"
    ignore_mount_errors: bool = False
    cleanup_remnants_first: bool = True
    mount_root: str = "/tmp"
    lock_file: str = DEFAULT_LOCK_FILE
    kill_grace_seconds: float = 2.0
    poll_interval: float = 0.2
    transaction_log: Optional[str] = None
    log_file: Optional[str] = None

    @property
    def archive_extension(self) -> str:
        """Suffix appended to archive destinations, e.g. '.tar.bz2'."""
        ext = COMPRESSION_FORMATS[self.compression][1]
        return f".tar.{ext}" if ext else ".tar"

    @property
    def tar_compression_flag(self) -> Optional[str]:
        return COMPRESSION_FORMATS[self.compression][0]
