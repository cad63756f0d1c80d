# pyright: standard

"""lvm-backup-ng: lvm_backup_ng/host/common.py
Wrappers around the system tools the backup relies on.
"""

import contextlib
import logging
import os
import re
import shutil
import subprocess
import tempfile
from pathlib import Path

import psutil

from .. import __util__

logger = logging.getLogger(__name__)

MOUNT_DIR_PREFIX = "volume-backup."
MAPPER_DIR = "/dev/mapper"
PROC_MOUNTS = "/proc/mounts"

REQUIRED_TOOLS = ("lvs", "lvcreate", "lvremove", "kpartx", "mount", "umount")

LVS_COLUMNS = "lv_name,vg_name,lv_path,lv_size,lv_attr,origin,segtype"

_OCTAL_ESCAPE = re.compile(r"\\([0-7]{3})")


def mapper_name(group: str, name: str) -> str:
    """Device-mapper node name of a logical volume ('-' is doubled)."""
    return f"{group.replace('-', '--')}-{name.replace('-', '--')}"


def _unescape_mount_field(value: str) -> str:
    return _OCTAL_ESCAPE.sub(lambda m: chr(int(m.group(1), 8)), value)


class Host:
    """The local system: lvm2, kpartx, mount and process control.

    Every method either succeeds or raises subprocess.CalledProcessError
    (or OSError for local filesystem operations). Callers translate those
    into the run's error taxonomy.
    """

    def __init__(self, lvm_debug=False) -> None:
        self.lvm_flags = ["-v"] if lvm_debug else []

    def __repr__(self) -> str:
        return "Host(local)"

    def check_tools(self, extra=()) -> None:
        """Abort if a required command is missing."""
        missing = [
            cmd for cmd in (*REQUIRED_TOOLS, *extra) if shutil.which(cmd) is None
        ]
        if missing:
            raise __util__.AbortError(
                f"Required command(s) missing: {', '.join(missing)}"
            )

    # lvm2

    def list_volume_rows(self) -> str:
        """Raw lvs listing, one '|' separated row per volume."""
        return self._exec_command(self._build_lvs_cmd()).stdout

    def lv_path(self, name: str, group: str) -> str:
        """Resolve the device path of ``group/name``."""
        cmd = self._build_lvs_cmd(
            columns="lv_path",
            select=f'lv_name = "{name}" && vg_name = "{group}"',
        )
        path = self._exec_command(cmd).stdout.strip()
        if not path:
            raise subprocess.CalledProcessError(
                5, cmd, stderr=f"Volume {group}/{name} not found"
            )
        return path

    def create_snapshot(self, source_path: str, name: str, thin: bool) -> None:
        self._exec_command(self._build_snapshot_cmd(source_path, name, thin))

    def remove_volume(self, target: str) -> None:
        """Remove a volume given by device path or 'group/name'."""
        self._exec_command(["lvremove", *self.lvm_flags, "-y", target])

    # kpartx

    def list_partitions(self, device: str) -> list[str]:
        """Names of the partitions kpartx would map for ``device``."""
        output = self._exec_command(["kpartx", "-l", device]).stdout
        partitions = []
        for line in output.splitlines():
            if not line.strip() or line[0].isspace():
                continue
            partitions.append(line.split()[0])
        return partitions

    def map_partitions(self, device: str, read_write=False) -> None:
        flags = "-av" if read_write else "-avr"
        self._exec_command(["kpartx", flags, device])

    def unmap_partitions(self, device: str) -> None:
        self._exec_command(["kpartx", "-vd", device])

    @staticmethod
    def partition_device(partition: str) -> str:
        return f"{MAPPER_DIR}/{partition}"

    # mounts

    def make_mount_dir(self, root: str) -> str:
        return tempfile.mkdtemp(prefix=MOUNT_DIR_PREFIX, dir=root)

    def remove_mount_dir(self, directory: str) -> None:
        with contextlib.suppress(FileNotFoundError):
            os.rmdir(directory)

    def mount(self, device: str, directory: str, read_write=False) -> None:
        mode = "rw" if read_write else "ro"
        self._exec_command(["mount", "-o", mode, "-t", "auto", device, directory])

    def unmount(self, directory: str) -> None:
        self._exec_command(["umount", directory])

    def mount_points(self) -> list[tuple[str, str]]:
        """(source, mount point) pairs of the current mount table."""
        entries = []
        with open(PROC_MOUNTS, encoding="utf-8") as f:
            for line in f:
                parts = line.split()
                if len(parts) >= 2:
                    source, target = parts[0], parts[1]
                    entries.append(
                        (_unescape_mount_field(source), _unescape_mount_field(target))
                    )
        return entries

    def same_device(self, first: str, second: str) -> bool:
        return os.path.realpath(first) == os.path.realpath(second)

    def describe_device(self, device: str) -> str:
        """ls/stat output for diagnostics, never raises."""
        output = []
        for cmd in (["ls", "-la", device], ["stat", device]):
            result = __util__.exec_subprocess(
                cmd, check=False, stderr=subprocess.STDOUT
            )
            output.append(result.stdout or "")
        return "".join(output).rstrip()

    # processes

    def spawn(self, command: list[str]) -> subprocess.Popen:
        """Start a supervised child process."""
        return __util__.exec_subprocess(command, method="Popen")

    def get_children_pids(self, pid: int) -> list[int]:
        """All descendant pids of ``pid``."""
        try:
            return [p.pid for p in psutil.Process(pid).children(recursive=True)]
        except psutil.NoSuchProcess:
            return []

    def send_signal(self, pid: int, signum: int) -> None:
        with contextlib.suppress(psutil.NoSuchProcess):
            psutil.Process(pid).send_signal(signum)

    def pid_exists(self, pid: int) -> bool:
        """Whether ``pid`` is still alive, reaping it if it is our zombie."""
        with contextlib.suppress(ChildProcessError):
            done, _ = os.waitpid(pid, os.WNOHANG)
            if done == pid:
                return False
        try:
            return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
        except psutil.NoSuchProcess:
            return False

    # command helpers

    def _build_lvs_cmd(self, columns=LVS_COLUMNS, select=None):
        cmd = [
            "lvs",
            "--noheadings",
            "--separator=|",
            "--units",
            "b",
            "-o",
            columns,
        ]
        if select:
            cmd += ["--select", select]
        return cmd

    def _build_snapshot_cmd(self, source_path, name, thin):
        cmd = ["lvcreate", *self.lvm_flags]
        if not thin:
            cmd += ["-l50%FREE"]
        cmd += ["-s", "-n", name, "-kn", str(source_path)]
        logger.debug("Snapshot command: %s", cmd)
        return cmd

    def _exec_command(self, command, **kwargs):
        if not command:
            raise ValueError("No command specified for _exec_command")
        return __util__.exec_subprocess(command, **kwargs)


def is_under(path: str, root: str) -> bool:
    """Whether ``path`` lies inside directory ``root``."""
    try:
        Path(path).resolve().relative_to(Path(root).resolve())
    except ValueError:
        return False
    return True
