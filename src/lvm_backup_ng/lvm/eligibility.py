"""Decide which volumes may be snapshotted for backup."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Collection, Optional

from .attributes import AttributeFacts
from .inventory import Volume

BACKUP_SNAPSHOT_REASON = "snapshots of backup snapshots are not supported"

# Checked in order, the first matching rule gives the reported reason.
STRUCTURAL_RULES = (
    ("snapshots", lambda f: f.is_cow),
    ("locked volumes", lambda f: f.is_locked),
    ("pvmoved volumes", lambda f: f.is_pvmove),
    ("an origin that has a merging snapshot", lambda f: f.is_merging_origin),
    # Too strict, snapshots can be taken from caches
    ("cache", lambda f: f.is_any_cache),
    ("thin pool type volumes", lambda f: f.is_thin_type and not f.is_thin_volume),
    ("mirror subvolumes or mirrors", lambda f: f.is_mirror_type_or_pvmove),
    ("raid subvolumes", lambda f: f.is_raid_type and not f.is_raid),
)


@dataclass(frozen=True)
class EligibilityDecision:
    """Result of evaluating a volume.

    A not-eligible decision without a reason means the operator filtered the
    volume out; a reason means a structural exclusion.
    """

    should_snapshot: bool
    reason: Optional[str] = None

    @property
    def filtered(self) -> bool:
        return not self.should_snapshot and self.reason is None

    def describe(self, volume: Volume) -> str:
        if self.should_snapshot:
            return f"Create snapshot from volume {volume.full_name}"
        if self.reason is None:
            return f"Ignore volume {volume.full_name}"
        if self.reason == BACKUP_SNAPSHOT_REASON:
            return (
                f"Can't create snapshot from volume {volume.full_name}: "
                f"{self.reason[0].upper()}{self.reason[1:]}."
            )
        return (
            f"Can't create snapshot from volume {volume.full_name}: "
            f"Snapshots of {self.reason} are not supported."
        )


ELIGIBLE = EligibilityDecision(True)


def structural_exclusion(facts: AttributeFacts) -> Optional[str]:
    """Reason why the volume type cannot be snapshotted, if any."""
    for reason, predicate in STRUCTURAL_RULES:
        if predicate(facts):
            return reason
    return None


def evaluate(
    volume: Volume,
    include: Collection[str],
    exclude: Collection[str],
    snapshot_prefix: str,
    facts: Optional[AttributeFacts] = None,
) -> EligibilityDecision:
    """Evaluate whether ``volume`` should be snapshotted."""
    if snapshot_prefix and volume.name.startswith(snapshot_prefix):
        return EligibilityDecision(False, BACKUP_SNAPSHOT_REASON)
    if include and volume.full_name not in include:
        return EligibilityDecision(False)
    if volume.full_name in exclude:
        return EligibilityDecision(False)

    reason = structural_exclusion(facts or volume.facts)
    if reason is not None:
        return EligibilityDecision(False, reason)
    return ELIGIBLE
