"""LVM volume model: attribute decoding, inventory and eligibility."""

from .attributes import AttributeFacts, decode_attributes, describe_attributes
from .eligibility import EligibilityDecision, evaluate
from .inventory import Volume, list_volumes, parse_volume_rows

__all__ = [
    "AttributeFacts",
    "decode_attributes",
    "describe_attributes",
    "EligibilityDecision",
    "evaluate",
    "Volume",
    "list_volumes",
    "parse_volume_rows",
]
