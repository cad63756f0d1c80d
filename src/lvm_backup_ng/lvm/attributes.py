"""Decoding of the ten character ``lv_attr`` field reported by lvs(8).

The decode tables are plain data, one mapping per position. Predicates used
by the eligibility rules are built on top of the raw characters.
"""

from __future__ import annotations

from dataclasses import dataclass

ATTR_LENGTH = 10

ORDINALS = ("1st", "2nd", "3rd", "4th", "5th", "6th", "7th", "8th", "9th", "10th")

# (field name, label used in descriptions, {char: meaning})
# An empty meaning means "nothing to report" for that position.
ATTRIBUTE_TABLE: tuple[tuple[str, str, dict[str, str]], ...] = (
    (
        "volume_type",
        "Volume type",
        {
            "C": "cache",
            "m": "mirrored",
            "M": "mirrored without initial sync",
            "o": "origin",
            "O": "origin with merging snapshot",
            "r": "raid",
            "R": "raid without initial sync",
            "s": "snapshot",
            "S": "merging snapshot",
            "p": "pvmove",
            "v": "virtual",
            "i": "mirror or raid image",
            "I": "mirror or raid image out-of-sync",
            "l": "mirror log device",
            "c": "volume under conversion",
            "V": "thin",
            "t": "thin pool",
            "T": "thin pool data",
            "d": "vdo pool",
            "D": "vdo pool data",
            "e": "raid or pool m(e)tadata or pool metadata spare",
            "-": "normal",
        },
    ),
    (
        "permissions",
        "Permissions",
        {
            "w": "writeable",
            "r": "read-only",
            "R": "read-only activation of non-read-only volume",
        },
    ),
    (
        "allocation_policy",
        "Allocation policy",
        {
            "a": "anywhere",
            "A": "anywhere, locked",
            "c": "contiguous",
            "C": "contiguous, locked",
            "i": "inherited",
            "I": "inherited, locked",
            "l": "cling",
            "L": "cling, locked",
            "n": "normal",
            "N": "normal, locked",
            "-": "",
        },
    ),
    ("fixed_minor", "Fixed minor", {"m": "fixed minor", "-": ""}),
    (
        "state",
        "State",
        {
            "a": "active",
            "h": "historical",
            "s": "suspended",
            "I": "invalid snapshot",
            "S": "invalid suspended snapshot",
            "m": "snapshot merge failed",
            "M": "suspended snapshot merge failed",
            "d": "mapped device present without tables",
            "i": "mapped device present with inactive table",
            "c": "thin-pool check needed",
            "C": "suspended thin-pool check needed",
            "X": "unknown",
        },
    ),
    ("device", "Device", {"o": "open", "X": "unknown", "-": "-"}),
    (
        "target_type",
        "Target type",
        {
            "C": "cache",
            "m": "mirror",
            "r": "raid",
            "s": "snapshot",
            "t": "thin",
            "u": "unknown",
            "v": "virtual",
            "-": "normal",
        },
    ),
    (
        "zero",
        "Zero",
        {
            "z": "newly-allocated data blocks are overwritten with blocks "
            "of zeroes before use",
            "-": "",
        },
    ),
    (
        "health",
        "Volume health",
        {
            "p": "partial",
            "X": "unknown",
            "r": "refresh needed",
            "m": "mismatches exist",
            "w": "writemostly",
            "R": "remove after reshape",
            "F": "failed",
            "D": "out of data space",
            "M": "metadata read-only",
            "E": "dm-writecache reports an error",
            "-": "ok",
        },
    ),
    ("skip_activation", "Skip activation", {"k": "skip activation", "-": ""}),
)


def unknown_marker(position: int, char: str) -> str:
    """Marker used for a character that is not valid at ``position``."""
    return f"Unknown {ORDINALS[position]} attribute: {char}"


def _char(attr: str, position: int) -> str:
    return attr[position] if position < len(attr) else ""


def decode_position(attr: str, position: int) -> str:
    """Decode a single position, never raising."""
    char = _char(attr, position)
    meanings = ATTRIBUTE_TABLE[position][2]
    if char in meanings:
        return meanings[char]
    return unknown_marker(position, char)


@dataclass(frozen=True)
class AttributeFacts:
    """Decoded ``lv_attr`` fields and the predicates derived from them."""

    attr: str
    volume_type: str
    permissions: str
    allocation_policy: str
    fixed_minor: str
    state: str
    device: str
    target_type: str
    zero: str
    health: str
    skip_activation: str

    def _at(self, position: int) -> str:
        return _char(self.attr, position)

    @property
    def is_active(self) -> bool:
        return self._at(4) == "a"

    @property
    def is_cow(self) -> bool:
        """Copy-on-write snapshot, merging or not."""
        return self._at(0) in ("s", "S")

    @property
    def is_locked(self) -> bool:
        char = self._at(2)
        return bool(char) and char != "-" and not char.islower()

    @property
    def is_pvmove(self) -> bool:
        return self._at(0) == "p"

    @property
    def is_merging_origin(self) -> bool:
        return self._at(0) == "O"

    @property
    def is_cache_type(self) -> bool:
        return self._at(0) == "C"

    @property
    def is_any_cache(self) -> bool:
        return self._at(6) == "C"

    @property
    def is_mirror_type_or_pvmove(self) -> bool:
        return self._at(6) == "m"

    @property
    def is_mirror(self) -> bool:
        return self._at(0) in ("m", "M")

    @property
    def is_thin_volume(self) -> bool:
        return self._at(0) in ("O", "S", "V")

    @property
    def is_thin_type(self) -> bool:
        # Thin pool metadata is not reported here
        return self._at(0) in ("t", "T", "O", "S", "V")

    @property
    def is_metadata(self) -> bool:
        return self._at(0) == "e"

    @property
    def is_raid_type(self) -> bool:
        return self._at(6) == "r"

    @property
    def is_raid(self) -> bool:
        return self._at(0) in ("r", "R")

    def fields(self) -> list[tuple[str, str]]:
        """(label, meaning) pairs in position order."""
        return [
            (label, getattr(self, name)) for name, label, _ in ATTRIBUTE_TABLE
        ]


def decode_attributes(attr: str) -> AttributeFacts:
    """Decode an ``lv_attr`` string into AttributeFacts.

    Short or malformed codes decode to unknown markers for the affected
    positions instead of raising.
    """
    values = {
        name: decode_position(attr, position)
        for position, (name, _, _) in enumerate(ATTRIBUTE_TABLE)
    }
    return AttributeFacts(attr=attr, **values)


def describe_attributes(attr: str) -> list[str]:
    """Human readable description lines, skipping fields with nothing to say."""
    lines = []
    for label, meaning in decode_attributes(attr).fields():
        if not meaning:
            continue
        if meaning.startswith("Unknown "):
            lines.append(meaning)
        else:
            lines.append(f"{label}: {meaning}")
    return lines
