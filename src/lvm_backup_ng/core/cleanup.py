"""Cleanup registry and cancellation supervisor.

Every transient resource of a run (snapshot, partition mapping, mount point,
supervised child process) is registered before it is acquired and
deregistered only after its release returned or failed with a tool error.
A release cut off by a signal stays registered. The supervisor releases
whatever is still registered, newest first, when the run ends for any
reason including SIGINT and SIGTERM.
"""

from __future__ import annotations

import contextlib
import logging
import signal
import subprocess
import threading
import time
from dataclasses import dataclass, field
from typing import Optional

from .. import __util__

logger = logging.getLogger(__name__)

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def remove_with_fallback(host, target: str, device: str) -> None:
    """Remove a volume, retrying once after unmapping leftover partitions.

    Raises subprocess.CalledProcessError if the retry fails as well.
    """
    try:
        host.remove_volume(target)
        return
    except subprocess.CalledProcessError as e:
        logger.warning(
            "Could not remove %s (%s), removing partition mappings", target, e
        )
    try:
        host.unmap_partitions(device)
    except subprocess.CalledProcessError as e:
        logger.debug("kpartx -d %s failed: %s", device, e)
    host.remove_volume(target)


@dataclass(eq=False)
class TerminateProcessTree:
    """Interrupt, then terminate a child process and all its descendants."""

    pid: int
    grace: float = 2.0
    poll_interval: float = 0.2

    def describe(self) -> str:
        return f"terminate process tree {self.pid}"

    def _wait(self, host, pids, timeout=None) -> list[int]:
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            alive = [pid for pid in pids if host.pid_exists(pid)]
            if not alive:
                return alive
            if deadline is not None and time.monotonic() >= deadline:
                return alive
            time.sleep(self.poll_interval)

    def release(self, host) -> None:
        pids = [*host.get_children_pids(self.pid), self.pid]
        logger.info("Stopping backup process %d (%d process(es))", self.pid, len(pids))
        for pid in pids:
            host.send_signal(pid, signal.SIGINT)
        survivors = self._wait(host, pids, timeout=self.grace)
        if survivors:
            logger.warning("Sending SIGTERM to %s", ", ".join(map(str, survivors)))
            for pid in survivors:
                host.send_signal(pid, signal.SIGTERM)
            self._wait(host, survivors)
        logger.debug("Process tree %d exited", self.pid)


@dataclass(eq=False)
class Unmount:
    """Unmount a temporary mount point and remove its directory."""

    path: str
    remove_dir: bool = True

    def describe(self) -> str:
        return f"unmount {self.path}"

    def release(self, host) -> None:
        try:
            host.unmount(self.path)
        except subprocess.CalledProcessError:
            # a directory that is still mounted cannot be removed
            if self.remove_dir:
                with contextlib.suppress(OSError):
                    host.remove_mount_dir(self.path)
            raise
        if self.remove_dir:
            host.remove_mount_dir(self.path)


@dataclass(eq=False)
class UnmapPartitions:
    """Remove the device-mapper partition nodes of a device."""

    device: str

    def describe(self) -> str:
        return f"unmap partitions of {self.device}"

    def release(self, host) -> None:
        host.unmap_partitions(self.device)


@dataclass(eq=False)
class RemoveSnapshot:
    """Remove a backup snapshot, by name until its path is known."""

    name: str
    group: str
    path: Optional[str] = None

    @property
    def target(self) -> str:
        return self.path or f"{self.group}/{self.name}"

    @property
    def device(self) -> str:
        return self.path or f"/dev/{self.group}/{self.name}"

    def describe(self) -> str:
        return f"remove snapshot {self.target}"

    def release(self, host) -> None:
        remove_with_fallback(host, self.target, self.device)


@dataclass
class CleanupRegistry:
    """Ordered teardown actions still pending for one run."""

    _actions: list = field(default_factory=list)
    _holding: bool = field(default=False, repr=False)
    _held_signal: Optional[int] = field(default=None, repr=False)

    def register(self, action):
        self._actions.append(action)
        logger.debug("Registered cleanup: %s", action.describe())
        return action

    def deregister(self, action) -> None:
        for i, pending in enumerate(self._actions):
            if pending is action:
                del self._actions[i]
                logger.debug("Deregistered cleanup: %s", action.describe())
                return

    def pending(self) -> list:
        return list(self._actions)

    def is_empty(self) -> bool:
        return not self._actions

    def __len__(self) -> int:
        return len(self._actions)

    def __contains__(self, action) -> bool:
        return any(pending is action for pending in self._actions)

    @property
    def current_backup_pid(self) -> Optional[int]:
        for action in reversed(self._actions):
            if isinstance(action, TerminateProcessTree):
                return action.pid
        return None

    def release(self, host, action) -> None:
        """Release ``action`` now and deregister it, propagating errors.

        The action is deregistered even when releasing fails, since the
        release has been attempted. An interrupted release keeps it
        registered so the supervisor retries it.
        """
        try:
            action.release(host)
        except __util__.BackupInterrupted:
            raise
        except Exception:
            self.deregister(action)
            raise
        self.deregister(action)

    @contextlib.contextmanager
    def holding_signals(self):
        """Defer cancellation until the block has registered what it acquired.

        A SIGINT or SIGTERM received inside the block raises BackupInterrupted
        when the block completes.
        """
        self._holding = True
        try:
            yield
        finally:
            self._holding = False
            held, self._held_signal = self._held_signal, None
        if held is not None:
            raise __util__.BackupInterrupted(held)

    def hold_signal(self, signum: int) -> bool:
        """Record ``signum`` for later if signals are held, else return False."""
        if not self._holding:
            return False
        self._held_signal = signum
        return True


class CleanupSupervisor:
    """Context manager tearing down a run's registry on every exit path.

    SIGINT and SIGTERM raise BackupInterrupted in the main flow so that a
    blocking wait unwinds into ``__exit__``. Signals arriving while the
    teardown itself runs are recorded and otherwise ignored.
    """

    def __init__(self, host, registry: Optional[CleanupRegistry] = None) -> None:
        self.host = host
        self.registry = registry if registry is not None else CleanupRegistry()
        self.signal_received: Optional[int] = None
        self._tearing_down = False
        self._previous_handlers: dict = {}

    @property
    def cancelled(self) -> bool:
        return self.signal_received is not None

    def __enter__(self) -> "CleanupSupervisor":
        if threading.current_thread() is threading.main_thread():
            for signum in HANDLED_SIGNALS:
                self._previous_handlers[signum] = signal.signal(
                    signum, self._handle_signal
                )
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        try:
            if exc is not None and not self.registry.is_empty():
                logger.error("Aborting: %s", exc or exc_type.__name__)
            self.teardown()
        finally:
            for signum, handler in self._previous_handlers.items():
                signal.signal(signum, handler)
            self._previous_handlers.clear()
        return False

    def _handle_signal(self, signum, frame) -> None:
        self.signal_received = signum
        name = signal.Signals(signum).name
        if self._tearing_down:
            logger.warning("Received %s during cleanup, continuing cleanup", name)
            return
        if self.registry.hold_signal(signum):
            logger.warning("Received %s, cancelling once registered", name)
            return
        logger.warning("Received %s, cancelling", name)
        raise __util__.BackupInterrupted(signum)

    def teardown(self) -> None:
        """Release all pending actions, newest first, never raising."""
        if self.registry.is_empty():
            return
        self._tearing_down = True
        logger.info(__util__.log_heading("Cleanup"))
        try:
            for action in reversed(self.registry.pending()):
                logger.info("Cleanup: %s", action.describe())
                try:
                    action.release(self.host)
                except Exception as e:
                    logger.error("Cleanup failed to %s: %s", action.describe(), e)
                finally:
                    self.registry.deregister(action)
        finally:
            self._tearing_down = False

