"""Volume inventory: parsing and normalizing the lvs(8) listing."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from functools import cached_property

from ..__util__ import InventoryError
from .attributes import AttributeFacts, decode_attributes

logger = logging.getLogger(__name__)

# Column order requested from lvs, see Host.list_volume_rows
VOLUME_FIELDS = ("name", "group", "path", "size", "attr", "origin", "segtype")
SEPARATOR = "|"


@dataclass(frozen=True)
class Volume:
    """A logical volume as reported by lvs.

    Attributes:
        name: Logical volume name
        group: Volume group name
        path: Device path (may be empty for hidden volumes)
        size: Size in bytes
        attr: Ten character lv_attr code
        origin: Origin volume name for snapshots, empty otherwise
        segtype: Segment type (linear, thin, raid1, ...)
    """

    name: str
    group: str
    path: str
    size: int
    attr: str
    origin: str = ""
    segtype: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.group}/{self.name}"

    @cached_property
    def facts(self) -> AttributeFacts:
        return decode_attributes(self.attr)

    def __str__(self) -> str:
        return self.full_name


def _parse_size(value: str, line_num: int) -> int:
    text = value.upper().removesuffix("B").strip()
    try:
        return int(float(text)) if text else 0
    except ValueError:
        raise InventoryError(f"Invalid volume size {value!r} on line {line_num}")


def parse_volume_rows(text: str) -> list[Volume]:
    """Parse ``lvs --noheadings --separator '|'`` output.

    Duplicate rows are dropped, keeping the first occurrence. A row with an
    unexpected number of fields means the listing format is not understood
    and raises InventoryError.
    """
    volumes: list[Volume] = []
    seen: set[tuple[str, ...]] = set()
    for line_num, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        fields = tuple(field.strip() for field in line.split(SEPARATOR))
        if len(fields) != len(VOLUME_FIELDS):
            raise InventoryError(
                f"Unexpected lvs output on line {line_num}: expected "
                f"{len(VOLUME_FIELDS)} fields, got {len(fields)}: {line!r}"
            )
        if fields in seen:
            logger.debug("Skipping duplicate lvs row: %s", line)
            continue
        seen.add(fields)
        name, group, path, size, attr, origin, segtype = fields
        volumes.append(
            Volume(
                name=name,
                group=group,
                path=path,
                size=_parse_size(size, line_num),
                attr=attr,
                origin=origin,
                segtype=segtype,
            )
        )
    return volumes


def list_volumes(host) -> list[Volume]:
    """Enumerate all logical volumes through ``host``."""
    try:
        output = host.list_volume_rows()
    except subprocess.CalledProcessError as e:
        raise InventoryError(f"Could not list logical volumes: {e.stderr or e}") from e
    volumes = parse_volume_rows(output)
    logger.debug("Found %d logical volume(s)", len(volumes))
    return volumes
