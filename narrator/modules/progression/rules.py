from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from narrator.modules.progression.models import UserThemeProgress

# Cumulative XP needed to reach each level; index = level - 1.
XP_LEVELS: tuple[int, ...] = (0, 100, 250, 450, 700, 1000, 1350, 1750, 2200, 2700)
MAX_PLAYER_LEVEL = len(XP_LEVELS)

MAX_INTEGRITY_BOON_VALUE = 10
MAX_WILLPOWER_BOON_VALUE = 5
APTITUDE_BOON_VALUE = 1
RESILIENCE_BOON_VALUE = 1


class BoonType(str, Enum):
    MAX_ATTRIBUTE_INCREASE = "MAX_ATTRIBUTE_INCREASE"
    ATTRIBUTE_ENHANCEMENT = "ATTRIBUTE_ENHANCEMENT"
    NEW_TRAIT = "NEW_TRAIT"


_BONUS_FIELD_BY_TARGET = {
    BoonType.MAX_ATTRIBUTE_INCREASE: {
        "max_integrity": "max_integrity_bonus",
        "max_willpower": "max_willpower_bonus",
    },
    BoonType.ATTRIBUTE_ENHANCEMENT: {
        "aptitude": "aptitude_bonus",
        "resilience": "resilience_bonus",
    },
}


@dataclass(slots=True, frozen=True)
class BoonPayload:
    boon_type: BoonType
    target_attribute: str
    value: int | str

    def to_dict(self) -> dict:
        return {"boon_type": self.boon_type.value, "target_attribute": self.target_attribute, "value": self.value}

    @classmethod
    def from_dict(cls, raw: dict) -> BoonPayload:
        return cls(
            boon_type=BoonType(str(raw.get("boon_type"))),
            target_attribute=str(raw.get("target_attribute") or ""),
            value=raw.get("value"),
        )


class BoonRejected(ValueError):
    """Raised when a Boon payload cannot be applied to the given progress."""


def xp_threshold_for_level(level: int) -> int | None:
    """Cumulative XP required to reach ``level``, or None past the level cap."""
    if level < 1 or level > MAX_PLAYER_LEVEL:
        return None
    return XP_LEVELS[level - 1]


def is_level_up_due(progress: UserThemeProgress) -> bool:
    if progress.level >= MAX_PLAYER_LEVEL:
        return False
    threshold = xp_threshold_for_level(progress.level + 1)
    return threshold is not None and progress.current_xp >= threshold


def validate_boon_payload(payload: BoonPayload) -> None:
    if payload.boon_type is BoonType.NEW_TRAIT:
        if not isinstance(payload.value, str) or not payload.value.strip():
            raise BoonRejected("NEW_TRAIT boon requires a trait key value")
        return
    targets = _BONUS_FIELD_BY_TARGET[payload.boon_type]
    if payload.target_attribute not in targets:
        raise BoonRejected(f"unknown target {payload.target_attribute!r} for {payload.boon_type.value}")
    if isinstance(payload.value, bool) or not isinstance(payload.value, int) or payload.value <= 0:
        raise BoonRejected("attribute boon value must be a positive integer")


def apply_boon_to_progress(progress: UserThemeProgress, payload: BoonPayload) -> UserThemeProgress:
    """Authoritative Boon rule shared by every persistence gateway.

    Returns a new progress record; the input is left untouched.
    """
    validate_boon_payload(payload)
    if not progress.is_boon_selection_pending:
        raise BoonRejected("no level-up is pending")
    if progress.level >= MAX_PLAYER_LEVEL:
        raise BoonRejected("already at max level")

    updated = progress.copy()
    if payload.boon_type is BoonType.NEW_TRAIT:
        trait_key = str(payload.value).strip()
        if updated.has_trait(trait_key):
            raise BoonRejected(f"trait {trait_key!r} already acquired")
        updated.add_trait(trait_key)
    else:
        field_name = _BONUS_FIELD_BY_TARGET[payload.boon_type][payload.target_attribute]
        setattr(updated, field_name, getattr(updated, field_name) + int(payload.value))
    updated.level += 1
    updated.is_boon_selection_pending = False
    return updated
