import random

from narrator.modules.narrative.actions import KIND_BOON, KIND_TRAIT, SuggestedAction
from narrator.modules.progression.engine import (
    CHOICE_APTITUDE,
    CHOICE_CHOOSE_ATTRIBUTE,
    CHOICE_CHOOSE_TRAIT,
    CHOICE_MAX_INTEGRITY,
    STEP_INITIAL_TRAIT,
    STEP_NONE,
    STEP_PRIMARY,
    STEP_SECONDARY_ATTRIBUTE,
    STEP_SECONDARY_TRAIT,
    TRAIT_CHOICE_PREFIX,
    ApplyBoon,
    InitialTraitChosen,
    OfferChanged,
    ProgressionEngine,
    Reoffer,
)
from narrator.modules.progression.models import UserThemeProgress
from narrator.modules.progression.rules import BoonPayload, BoonType
from tests.support.game import THEME_ID, bundled_store

ALL_TRAITS = {"iron_oath", "grave_sight", "ashen_blood", "lantern_bearer", "hollow_step"}


def _engine(seed: int = 11) -> ProgressionEngine:
    return ProgressionEngine(bundled_store(), THEME_ID, rng=random.Random(seed))


def test_award_xp_opens_exactly_one_offer_per_threshold() -> None:
    engine = _engine()
    progress = UserThemeProgress(current_xp=90)

    assert engine.award_xp(progress, 15) is True
    assert progress.current_xp == 105
    assert progress.is_boon_selection_pending is True

    engine.enter_primary([])
    assert engine.step == STEP_PRIMARY
    assert len(engine.offered_actions()) == 4
    assert engine.award_xp(progress, 500) is False
    assert progress.current_xp == 605


def test_award_xp_ignores_negative_and_missing_amounts() -> None:
    engine = _engine()
    progress = UserThemeProgress(current_xp=40)
    assert engine.award_xp(progress, None) is False
    assert engine.award_xp(progress, -30) is False
    assert progress.current_xp == 40


def test_primary_offer_flat_boon_and_restore_snapshot() -> None:
    engine = _engine()
    snapshot = [SuggestedAction(text="Press on", display_text="Press on")]
    engine.enter_primary(snapshot)

    actions = engine.offered_actions()
    assert [a.kind for a in actions] == [KIND_BOON] * 4
    assert actions[0].text == "Increase Max Integrity (+10)"

    decision = engine.select(CHOICE_MAX_INTEGRITY, UserThemeProgress(is_boon_selection_pending=True))
    assert decision == ApplyBoon(BoonPayload(BoonType.MAX_ATTRIBUTE_INCREASE, "max_integrity", 10))
    assert engine.boon_applied() == snapshot
    assert engine.step == STEP_NONE


def test_attribute_sub_offer() -> None:
    engine = _engine()
    engine.enter_primary([])
    assert engine.select(CHOICE_CHOOSE_ATTRIBUTE, UserThemeProgress()) == OfferChanged("boon_attribute_prompt")
    assert engine.step == STEP_SECONDARY_ATTRIBUTE
    assert len(engine.offered_actions()) == 2
    decision = engine.select(CHOICE_APTITUDE, UserThemeProgress())
    assert decision == ApplyBoon(BoonPayload(BoonType.ATTRIBUTE_ENHANCEMENT, "aptitude", 1))


def test_trait_sub_offer_excludes_acquired_traits() -> None:
    engine = _engine()
    engine.enter_primary([])
    progress = UserThemeProgress(acquired_trait_keys=["iron_oath", "grave_sight"])

    assert engine.select(CHOICE_CHOOSE_TRAIT, progress) == OfferChanged("boon_trait_prompt")
    assert engine.step == STEP_SECONDARY_TRAIT
    offered = engine.offered_actions()
    keys = {a.choice_id[len(TRAIT_CHOICE_PREFIX) :] for a in offered}
    assert len(keys) == 3
    assert keys == ALL_TRAITS - {"iron_oath", "grave_sight"}
    assert all(a.kind == KIND_TRAIT and a.description for a in offered)

    decision = engine.select(offered[0].choice_id, progress)
    assert isinstance(decision, ApplyBoon)
    assert decision.payload.boon_type is BoonType.NEW_TRAIT


def test_trait_sub_offer_with_nothing_left_reoffers_primary() -> None:
    engine = _engine()
    engine.enter_primary([])
    decision = engine.select(CHOICE_CHOOSE_TRAIT, UserThemeProgress(acquired_trait_keys=sorted(ALL_TRAITS)))
    assert decision == Reoffer("boon_no_traits")
    assert engine.step == STEP_PRIMARY


def test_invalid_selection_keeps_offer() -> None:
    engine = _engine()
    engine.enter_primary([])
    assert engine.select("boon_unknown", UserThemeProgress()) == Reoffer("invalid_choice")
    assert engine.step == STEP_PRIMARY
    assert engine.match_choice("Learn a new trait") == CHOICE_CHOOSE_TRAIT
    assert engine.match_choice("learn a new trait") is None


def test_boon_failure_returns_to_primary() -> None:
    engine = _engine()
    engine.enter_primary([])
    engine.select(CHOICE_CHOOSE_ATTRIBUTE, UserThemeProgress())
    engine.boon_failed()
    assert engine.step == STEP_PRIMARY


def test_initial_trait_offer_for_fresh_progress() -> None:
    engine = _engine()
    assert engine.begin_initial_trait_offer(UserThemeProgress(current_xp=1), "start") is False

    assert engine.begin_initial_trait_offer(UserThemeProgress(), 'Start game as "A".') is True
    assert engine.step == STEP_INITIAL_TRAIT
    offered = engine.offered_actions()
    assert len({a.choice_id for a in offered}) == 3

    decision = engine.select(offered[1].choice_id, UserThemeProgress())
    assert isinstance(decision, InitialTraitChosen)
    assert decision.deferred_action == 'Start game as "A".'
    assert decision.trait_key in ALL_TRAITS
