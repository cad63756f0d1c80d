"""Partition discovery and mount orchestration for snapshot devices."""

from __future__ import annotations

import logging
import os
import subprocess
from typing import Optional

from .. import __util__
from .cleanup import CleanupRegistry, UnmapPartitions, Unmount

logger = logging.getLogger(__name__)


class PartitionMounter:
    """Mounts a snapshot (per partition or whole) and backs up each filesystem.

    Attributes:
        failures: (device, message) pairs of mount errors that were ignored
    """

    def __init__(self, host, registry: CleanupRegistry, config, dispatcher) -> None:
        self.host = host
        self.registry = registry
        self.config = config
        self.dispatcher = dispatcher
        self.failures: list[tuple[str, str]] = []

    def destination(
        self, group: str, source_name: str, index: Optional[int] = None
    ) -> str:
        """Destination name without archive extension."""
        name = f"{self.config.dest_prefix}{group}-{source_name}"
        if index is not None:
            name += f"-{index}"
        return name

    def list_partitions(self, device: str) -> list[str]:
        try:
            return self.host.list_partitions(device)
        except subprocess.CalledProcessError as e:
            logger.error("Failed: kpartx -l %s: %s", device, e.stderr or e)
            logger.error("%s", self.host.describe_device(device))
            raise __util__.PartitionError(
                f"Could not list partitions of {device}"
            ) from e

    def backup_device(self, device: str, group: str, source_name: str) -> list[str]:
        """Back up every filesystem on ``device``, returning the produced paths."""
        logger.info("Volume path: %s", device)
        logger.info("Destination prefix: %s", self.config.dest_prefix)

        partitions = self.list_partitions(device)
        logger.debug("Partitions of %s: %s", device, partitions)

        if partitions:
            return self._backup_partitions(device, partitions, group, source_name)

        logger.info("No partitions to mount in %s", device)
        logger.info("Trying to mount a full volume as disk")
        target = self._mount_and_transfer(device, self.destination(group, source_name))
        return [target] if target else []

    def _backup_partitions(self, device, partitions, group, source_name) -> list[str]:
        unmap = self.registry.register(UnmapPartitions(device))
        try:
            self.host.map_partitions(device, read_write=self.config.part_rw)
        except subprocess.CalledProcessError as e:
            raise __util__.PartitionError(
                f"Could not map partitions of {device}: {e.stderr or e}"
            ) from e

        produced = []
        for index, partition in enumerate(partitions, start=1):
            node = self.host.partition_device(partition)
            logger.info("Partition %d: %s", index, node)
            target = self._mount_and_transfer(
                node, self.destination(group, source_name, index)
            )
            if target:
                produced.append(target)

        logger.info("Remove partition mappings of %s", device)
        try:
            self.registry.release(self.host, unmap)
        except subprocess.CalledProcessError as e:
            raise __util__.PartitionError(
                f"Could not unmap partitions of {device}: {e.stderr or e}"
            ) from e
        return produced

    def _mount_and_transfer(self, device: str, destination: str) -> Optional[str]:
        try:
            mount_dir = self.host.make_mount_dir(self.config.mount_root)
        except OSError as e:
            raise __util__.MountError(f"Could not create mount directory: {e}") from e

        unmount = self.registry.register(Unmount(mount_dir))
        try:
            self.host.mount(device, mount_dir)
        except subprocess.CalledProcessError as e:
            self.registry.deregister(unmount)
            self.host.remove_mount_dir(mount_dir)
            message = (
                f"Could not mount partition device {device} to directory {mount_dir}"
            )
            if not self.config.ignore_mount_errors:
                raise __util__.MountError(f"{message}: {e.stderr or e}") from e
            logger.error("%s: %s", message, e.stderr or e)
            self.failures.append((device, message))
            return None

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Contents of %s: %s", device, sorted(os.listdir(mount_dir)))

        target = self.dispatcher.run(mount_dir, destination)

        try:
            self.registry.release(self.host, unmount)
        except (subprocess.CalledProcessError, OSError) as e:
            raise __util__.MountError(f"Could not unmount {mount_dir}: {e}") from e
        return target
