"""Pytest configuration and shared fixtures."""

import os
import signal
import subprocess
import tempfile
from contextlib import suppress

import pytest

from lvm_backup_ng.config import BackupConfig
from lvm_backup_ng.transaction import set_transaction_log

GiB = 1024**3


def volume_row(
    name,
    group="vg0",
    attr="-wi-a-----",
    size=GiB,
    origin="",
    segtype="linear",
):
    """One lvs row as the fake host reports it."""
    return (name, group, f"/dev/{group}/{name}", f"{size}B", attr, origin, segtype)


class FakeProcess:
    """Stands in for the Popen object of a transfer command."""

    def __init__(self, host, pid, args):
        self.host = host
        self.pid = pid
        self.args = args
        self.returncode = None

    def wait(self):
        if self.host.on_wait is not None:
            self.host.on_wait(self)
        self.host.alive.discard(self.pid)
        self.returncode = self.host.returncode
        return self.returncode


class FakeHost:
    """In-memory host: volumes, partition maps, mounts and child processes.

    Every operation is appended to ``calls``. ``fail`` maps an operation name
    to the number of times it should fail before succeeding again.
    ``interrupt`` holds operations that receive SIGTERM once while running.
    """

    def __init__(self, rows=()):
        self.rows = [tuple(row) for row in rows]
        self.partitions = {}
        self.mapped = set()
        self.mounted = {}
        self.calls = []
        self.fail = {}
        self.interrupt = set()
        self.returncode = 0
        self.on_wait = None
        self.alive = set()
        self.children = {}
        self.stubborn = set()
        self._next_pid = 1000

    def ops(self):
        return [call[0] for call in self.calls]

    def snapshot_names(self):
        return [row[0] for row in self.rows if row[5]]

    def _call(self, op, *args):
        self.calls.append((op, *args))
        if op in self.interrupt:
            self.interrupt.discard(op)
            signal.raise_signal(signal.SIGTERM)
        if self.fail.get(op):
            self.fail[op] -= 1
            raise subprocess.CalledProcessError(5, [op, *args], stderr=f"{op} failed")

    def check_tools(self, extra=()):
        self.calls.append(("check_tools", tuple(extra)))

    # lvm2

    def list_volume_rows(self):
        self._call("lvs")
        return "\n".join("  " + "|".join(row) for row in self.rows) + "\n"

    def lv_path(self, name, group):
        for row in self.rows:
            if row[0] == name and row[1] == group:
                return row[2]
        raise subprocess.CalledProcessError(5, ["lvs"], stderr="not found")

    def create_snapshot(self, source_path, name, thin):
        self._call("lvcreate", name, thin)
        source = next(row for row in self.rows if row[2] == source_path)
        group = source[1]
        attr = "Vwi-a-tz--" if thin else "swi-a-s---"
        segtype = "thin" if thin else "linear"
        self.rows.append(
            (name, group, f"/dev/{group}/{name}", source[3], attr, source[0], segtype)
        )

    def remove_volume(self, target):
        self._call("lvremove", target)
        self.rows = [
            row
            for row in self.rows
            if target not in (row[2], f"{row[1]}/{row[0]}")
        ]

    # kpartx

    def list_partitions(self, device):
        self._call("kpartx-l", device)
        return list(self.partitions.get(device, []))

    def map_partitions(self, device, read_write=False):
        self._call("kpartx-a", device, read_write)
        self.mapped.add(device)

    def unmap_partitions(self, device):
        self._call("kpartx-d", device)
        self.mapped.discard(device)

    @staticmethod
    def partition_device(partition):
        return f"/dev/mapper/{partition}"

    # mounts

    def make_mount_dir(self, root):
        return tempfile.mkdtemp(prefix="volume-backup.", dir=root)

    def remove_mount_dir(self, directory):
        self.calls.append(("rmdir", directory))
        with suppress(FileNotFoundError):
            os.rmdir(directory)

    def mount(self, device, directory, read_write=False):
        self._call("mount", device, directory)
        self.mounted[directory] = device

    def unmount(self, directory):
        self._call("umount", directory)
        self.mounted.pop(directory, None)

    def mount_points(self):
        return [(device, directory) for directory, device in self.mounted.items()]

    def same_device(self, first, second):
        return first == second

    def describe_device(self, device):
        return f"ls: cannot access '{device}'"

    # processes

    def spawn(self, command):
        self._call("spawn", list(command))
        pid = self._next_pid
        self._next_pid += 1
        self.alive.add(pid)
        return FakeProcess(self, pid, list(command))

    def get_children_pids(self, pid):
        return list(self.children.get(pid, []))

    def send_signal(self, pid, signum):
        self.calls.append(("signal", pid, signum))
        if signum == signal.SIGTERM or pid not in self.stubborn:
            self.alive.discard(pid)

    def pid_exists(self, pid):
        return pid in self.alive


@pytest.fixture
def host():
    """A fake host with one plain volume vg0/root."""
    return FakeHost([volume_row("root")])


@pytest.fixture
def config(tmp_path):
    """Configuration writing into a temporary directory."""
    dest = tmp_path / "backup"
    dest.mkdir()
    mount_root = tmp_path / "mnt"
    mount_root.mkdir()
    return BackupConfig(
        dest_prefix=f"{dest}/",
        mount_root=str(mount_root),
        lock_file=str(tmp_path / "run.lock"),
        kill_grace_seconds=0.0,
        poll_interval=0.01,
    )


@pytest.fixture(autouse=True)
def reset_transaction_log():
    """Never leak an enabled transaction log between tests."""
    yield
    set_transaction_log(None)
