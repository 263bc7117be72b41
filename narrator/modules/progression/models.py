from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from typing import Any

from narrator.modules.theme.schemas import BaseAttributes


@dataclass(slots=True)
class UserThemeProgress:
    level: int = 1
    current_xp: int = 0
    max_integrity_bonus: int = 0
    max_willpower_bonus: int = 0
    aptitude_bonus: int = 0
    resilience_bonus: int = 0
    acquired_trait_keys: list[str] = field(default_factory=list)
    is_boon_selection_pending: bool = False

    @property
    def is_fresh(self) -> bool:
        return self.level == 1 and self.current_xp == 0 and not self.acquired_trait_keys

    def has_trait(self, trait_key: str) -> bool:
        return trait_key in self.acquired_trait_keys

    def add_trait(self, trait_key: str) -> None:
        if trait_key not in self.acquired_trait_keys:
            self.acquired_trait_keys.append(trait_key)

    def copy(self) -> UserThemeProgress:
        return UserThemeProgress.from_dict(self.to_dict())

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: dict | None) -> UserThemeProgress:
        raw = raw or {}
        traits: list[str] = []
        for key in raw.get("acquired_trait_keys") or raw.get("acquired_traits") or []:
            if isinstance(key, str) and key and key not in traits:
                traits.append(key)
        return cls(
            level=max(1, int(raw.get("level") or 1)),
            current_xp=max(0, int(raw.get("current_xp") or 0)),
            max_integrity_bonus=int(raw.get("max_integrity_bonus") or 0),
            max_willpower_bonus=int(raw.get("max_willpower_bonus") or 0),
            aptitude_bonus=int(raw.get("aptitude_bonus") or 0),
            resilience_bonus=int(raw.get("resilience_bonus") or 0),
            acquired_trait_keys=traits,
            is_boon_selection_pending=bool(raw.get("is_boon_selection_pending")),
        )


@dataclass(slots=True, frozen=True)
class EffectiveAttributes:
    max_integrity: int
    max_willpower: int
    aptitude: int
    resilience: int


def effective_attributes(base: BaseAttributes, progress: UserThemeProgress) -> EffectiveAttributes:
    return EffectiveAttributes(
        max_integrity=base.integrity + progress.max_integrity_bonus,
        max_willpower=base.willpower + progress.max_willpower_bonus,
        aptitude=base.aptitude + progress.aptitude_bonus,
        resilience=base.resilience + progress.resilience_bonus,
    )


def _as_int(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if isinstance(value, float) and math.isfinite(value):
        return int(value)
    return None


def _as_conditions(value: object) -> set[str] | None:
    if isinstance(value, list):
        return {str(item).strip() for item in value if str(item).strip()}
    if isinstance(value, str):
        return {part.strip() for part in value.split(",") if part.strip()}
    return None


@dataclass(slots=True)
class RunStats:
    current_integrity: int
    current_willpower: int
    strain_level: int = 1
    conditions: set[str] = field(default_factory=set)

    @classmethod
    def fresh(cls, attrs: EffectiveAttributes) -> RunStats:
        return cls(current_integrity=attrs.max_integrity, current_willpower=attrs.max_willpower)

    def refresh_from_dashboard(self, updates: dict, attrs: EffectiveAttributes) -> None:
        """Apply absolute values reported in ``dashboard_updates``; unknown or malformed keys are ignored."""
        integrity = _as_int(updates.get("current_integrity"))
        if integrity is not None:
            self.current_integrity = integrity
        willpower = _as_int(updates.get("current_willpower"))
        if willpower is not None:
            self.current_willpower = willpower
        strain = _as_int(updates.get("strain_level"))
        if strain is not None:
            self.strain_level = strain
        conditions = _as_conditions(updates.get("active_conditions"))
        if conditions is not None:
            self.conditions = conditions
        self.clamp(attrs)

    def clamp(self, attrs: EffectiveAttributes) -> None:
        self.current_integrity = max(0, min(self.current_integrity, attrs.max_integrity))
        self.current_willpower = max(0, min(self.current_willpower, attrs.max_willpower))
        self.strain_level = max(1, self.strain_level)

    @classmethod
    def from_dashboard(cls, updates: dict, attrs: EffectiveAttributes) -> RunStats:
        stats = cls.fresh(attrs)
        stats.refresh_from_dashboard(updates or {}, attrs)
        return stats

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_integrity": self.current_integrity,
            "current_willpower": self.current_willpower,
            "strain_level": self.strain_level,
            "active_conditions": sorted(self.conditions),
        }
