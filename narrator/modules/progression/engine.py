from __future__ import annotations

import logging
import random
from dataclasses import dataclass

from narrator.modules.narrative.actions import KIND_BOON, KIND_TRAIT, SuggestedAction
from narrator.modules.progression.models import UserThemeProgress
from narrator.modules.progression.rules import (
    APTITUDE_BOON_VALUE,
    MAX_INTEGRITY_BOON_VALUE,
    MAX_WILLPOWER_BOON_VALUE,
    RESILIENCE_BOON_VALUE,
    BoonPayload,
    BoonType,
    is_level_up_due,
)
from narrator.modules.theme.store import ThemeStore

logger = logging.getLogger(__name__)

CHOICE_MAX_INTEGRITY = "boon_max_integrity"
CHOICE_MAX_WILLPOWER = "boon_max_willpower"
CHOICE_CHOOSE_ATTRIBUTE = "boon_choose_attribute"
CHOICE_CHOOSE_TRAIT = "boon_choose_trait"
CHOICE_APTITUDE = "boon_aptitude"
CHOICE_RESILIENCE = "boon_resilience"
TRAIT_CHOICE_PREFIX = "trait:"
TRAIT_OFFER_SIZE = 3

STEP_NONE = "none"
STEP_PRIMARY = "primary"
STEP_SECONDARY_ATTRIBUTE = "secondary_attribute"
STEP_SECONDARY_TRAIT = "secondary_trait"
STEP_INITIAL_TRAIT = "initial_trait"

_FLAT_BOONS: dict[str, BoonPayload] = {
    CHOICE_MAX_INTEGRITY: BoonPayload(BoonType.MAX_ATTRIBUTE_INCREASE, "max_integrity", MAX_INTEGRITY_BOON_VALUE),
    CHOICE_MAX_WILLPOWER: BoonPayload(BoonType.MAX_ATTRIBUTE_INCREASE, "max_willpower", MAX_WILLPOWER_BOON_VALUE),
    CHOICE_APTITUDE: BoonPayload(BoonType.ATTRIBUTE_ENHANCEMENT, "aptitude", APTITUDE_BOON_VALUE),
    CHOICE_RESILIENCE: BoonPayload(BoonType.ATTRIBUTE_ENHANCEMENT, "resilience", RESILIENCE_BOON_VALUE),
}


# Boon selection states.
@dataclass(slots=True, frozen=True)
class Idle:
    pass


@dataclass(slots=True, frozen=True)
class PrimaryBoonOffer:
    pass


@dataclass(slots=True, frozen=True)
class AttributeBoonOffer:
    pass


@dataclass(slots=True, frozen=True)
class TraitBoonOffer:
    trait_keys: tuple[str, ...]


@dataclass(slots=True, frozen=True)
class InitialTraitOffer:
    trait_keys: tuple[str, ...]
    deferred_action: str


BoonSelectionContext = Idle | PrimaryBoonOffer | AttributeBoonOffer | TraitBoonOffer | InitialTraitOffer


# Outcomes of a selection.
@dataclass(slots=True, frozen=True)
class ApplyBoon:
    payload: BoonPayload


@dataclass(slots=True, frozen=True)
class OfferChanged:
    message_key: str


@dataclass(slots=True, frozen=True)
class Reoffer:
    message_key: str


@dataclass(slots=True, frozen=True)
class InitialTraitChosen:
    trait_key: str
    deferred_action: str


SelectionDecision = ApplyBoon | OfferChanged | Reoffer | InitialTraitChosen


class ProgressionEngine:
    """Level-up and trait selection state machine for one session.

    The engine is synchronous and never talks to persistence; it returns decisions
    that the session controller carries out.
    """

    def __init__(self, store: ThemeStore, theme_id: str, *, rng: random.Random | None = None):
        self.store = store
        self.theme_id = theme_id
        self.rng = rng or random.Random()
        self.state: BoonSelectionContext = Idle()
        self.snapshot_actions: list[SuggestedAction] = []

    @property
    def is_active(self) -> bool:
        return not isinstance(self.state, Idle)

    @property
    def step(self) -> str:
        state = self.state
        if isinstance(state, Idle):
            return STEP_NONE
        if isinstance(state, PrimaryBoonOffer):
            return STEP_PRIMARY
        if isinstance(state, AttributeBoonOffer):
            return STEP_SECONDARY_ATTRIBUTE
        if isinstance(state, TraitBoonOffer):
            return STEP_SECONDARY_TRAIT
        if isinstance(state, InitialTraitOffer):
            return STEP_INITIAL_TRAIT
        raise TypeError(f"unknown boon selection state: {state!r}")

    def reset(self) -> None:
        self.state = Idle()
        self.snapshot_actions = []

    def trait_keys(self) -> list[str]:
        return list(self.store.get_traits(self.theme_id))

    def _sample_traits(self, exclude: list[str]) -> tuple[str, ...]:
        eligible = [key for key in self.trait_keys() if key not in exclude]
        return tuple(self.rng.sample(eligible, min(TRAIT_OFFER_SIZE, len(eligible))))

    def award_xp(self, progress: UserThemeProgress, xp: float | int | None) -> bool:
        """Accumulate XP; returns True when this award opens a new level-up offer."""
        amount = int(xp or 0)
        if amount > 0:
            progress.current_xp += amount
        if self.is_active or progress.is_boon_selection_pending:
            return False
        if not is_level_up_due(progress):
            return False
        progress.is_boon_selection_pending = True
        return True

    def enter_primary(self, current_actions: list[SuggestedAction]) -> None:
        if isinstance(self.state, Idle):
            self.snapshot_actions = list(current_actions)
        self.state = PrimaryBoonOffer()

    def should_offer_initial_traits(self, progress: UserThemeProgress) -> bool:
        return progress.is_fresh and bool(self.trait_keys())

    def begin_initial_trait_offer(self, progress: UserThemeProgress, deferred_action: str) -> bool:
        if not self.should_offer_initial_traits(progress):
            return False
        self.state = InitialTraitOffer(self._sample_traits([]), deferred_action)
        return True

    def _trait_action(self, trait_key: str, language: str) -> SuggestedAction:
        definition = self.store.get_traits(self.theme_id).get(trait_key)
        name = self.store.get_text(self.theme_id, definition.name_key, language) if definition else trait_key
        description = self.store.get_text(self.theme_id, definition.description_key, language) if definition else ""
        return SuggestedAction(
            text=name,
            display_text=name,
            description=description,
            choice_id=f"{TRAIT_CHOICE_PREFIX}{trait_key}",
            kind=KIND_TRAIT,
        )

    def _boon_action(self, choice_id: str, language: str) -> SuggestedAction:
        label = self.store.get_text(self.theme_id, choice_id, language)
        return SuggestedAction(text=label, display_text=label, choice_id=choice_id, kind=KIND_BOON)

    def offered_actions(self, language: str = "en") -> list[SuggestedAction]:
        state = self.state
        if isinstance(state, Idle):
            return []
        if isinstance(state, PrimaryBoonOffer):
            choice_ids = (CHOICE_MAX_INTEGRITY, CHOICE_MAX_WILLPOWER, CHOICE_CHOOSE_ATTRIBUTE, CHOICE_CHOOSE_TRAIT)
            return [self._boon_action(choice_id, language) for choice_id in choice_ids]
        if isinstance(state, AttributeBoonOffer):
            return [self._boon_action(choice_id, language) for choice_id in (CHOICE_APTITUDE, CHOICE_RESILIENCE)]
        if isinstance(state, (TraitBoonOffer, InitialTraitOffer)):
            return [self._trait_action(key, language) for key in state.trait_keys]
        raise TypeError(f"unknown boon selection state: {state!r}")

    def prompt_key(self) -> str | None:
        state = self.state
        if isinstance(state, PrimaryBoonOffer):
            return "boon_primary_prompt"
        if isinstance(state, AttributeBoonOffer):
            return "boon_attribute_prompt"
        if isinstance(state, TraitBoonOffer):
            return "boon_trait_prompt"
        if isinstance(state, InitialTraitOffer):
            return "initial_trait_prompt"
        return None

    def match_choice(self, text_or_id: str, language: str = "en") -> str | None:
        """Map a choice id, or text exactly equal to an offered label, to an offered choice id."""
        candidate = str(text_or_id or "").strip()
        for action in self.offered_actions(language):
            if candidate == action.choice_id or candidate == action.text:
                return action.choice_id
        return None

    def select(self, choice_id: str, progress: UserThemeProgress, language: str = "en") -> SelectionDecision:
        offered = {action.choice_id for action in self.offered_actions(language)}
        if choice_id not in offered:
            return Reoffer("invalid_choice")

        state = self.state
        if isinstance(state, InitialTraitOffer):
            return InitialTraitChosen(choice_id[len(TRAIT_CHOICE_PREFIX) :], state.deferred_action)
        if isinstance(state, PrimaryBoonOffer):
            if choice_id == CHOICE_CHOOSE_ATTRIBUTE:
                self.state = AttributeBoonOffer()
                return OfferChanged("boon_attribute_prompt")
            if choice_id == CHOICE_CHOOSE_TRAIT:
                traits = self._sample_traits(progress.acquired_trait_keys)
                if not traits:
                    logger.info("no eligible traits left theme_id=%s", self.theme_id)
                    return Reoffer("boon_no_traits")
                self.state = TraitBoonOffer(traits)
                return OfferChanged("boon_trait_prompt")
            return ApplyBoon(_FLAT_BOONS[choice_id])
        if isinstance(state, AttributeBoonOffer):
            return ApplyBoon(_FLAT_BOONS[choice_id])
        if isinstance(state, TraitBoonOffer):
            trait_key = choice_id[len(TRAIT_CHOICE_PREFIX) :]
            return ApplyBoon(BoonPayload(BoonType.NEW_TRAIT, "trait", trait_key))
        raise TypeError(f"unknown boon selection state: {state!r}")

    def boon_applied(self) -> list[SuggestedAction]:
        """Leave the offer and hand back the actions that were showing before it."""
        restored = list(self.snapshot_actions)
        self.reset()
        return restored

    def boon_failed(self) -> None:
        self.state = PrimaryBoonOffer()

    def initial_trait_done(self) -> None:
        self.reset()
