import pytest

from narrator.modules.progression.models import RunStats, UserThemeProgress, effective_attributes
from narrator.modules.progression.rules import (
    MAX_PLAYER_LEVEL,
    BoonPayload,
    BoonRejected,
    BoonType,
    apply_boon_to_progress,
    is_level_up_due,
    xp_threshold_for_level,
)
from narrator.modules.theme.schemas import BaseAttributes


def _pending(**values) -> UserThemeProgress:
    return UserThemeProgress(is_boon_selection_pending=True, **values)


def test_thresholds() -> None:
    assert xp_threshold_for_level(1) == 0
    assert xp_threshold_for_level(2) == 100
    assert xp_threshold_for_level(MAX_PLAYER_LEVEL + 1) is None
    assert is_level_up_due(UserThemeProgress(current_xp=100)) is True
    assert is_level_up_due(UserThemeProgress(current_xp=99)) is False
    assert is_level_up_due(UserThemeProgress(level=MAX_PLAYER_LEVEL, current_xp=99999)) is False


def test_apply_max_attribute_boon() -> None:
    before = _pending(current_xp=120)
    after = apply_boon_to_progress(before, BoonPayload(BoonType.MAX_ATTRIBUTE_INCREASE, "max_integrity", 10))
    assert after.level == 2
    assert after.max_integrity_bonus == 10
    assert after.is_boon_selection_pending is False
    assert before.level == 1
    assert before.is_boon_selection_pending is True


def test_apply_trait_boon_rejects_duplicates() -> None:
    progress = _pending(acquired_trait_keys=["iron_oath"])
    after = apply_boon_to_progress(progress, BoonPayload(BoonType.NEW_TRAIT, "trait", "grave_sight"))
    assert after.acquired_trait_keys == ["iron_oath", "grave_sight"]
    with pytest.raises(BoonRejected):
        apply_boon_to_progress(progress, BoonPayload(BoonType.NEW_TRAIT, "trait", "iron_oath"))


@pytest.mark.parametrize(
    "payload",
    [
        BoonPayload(BoonType.MAX_ATTRIBUTE_INCREASE, "aptitude", 1),
        BoonPayload(BoonType.ATTRIBUTE_ENHANCEMENT, "resilience", 0),
        BoonPayload(BoonType.ATTRIBUTE_ENHANCEMENT, "resilience", True),
        BoonPayload(BoonType.NEW_TRAIT, "trait", "  "),
    ],
)
def test_invalid_payloads_are_rejected(payload: BoonPayload) -> None:
    with pytest.raises(BoonRejected):
        apply_boon_to_progress(_pending(), payload)


def test_boon_requires_pending_level_up() -> None:
    with pytest.raises(BoonRejected):
        apply_boon_to_progress(UserThemeProgress(), BoonPayload(BoonType.ATTRIBUTE_ENHANCEMENT, "aptitude", 1))


def test_boon_payload_from_dict() -> None:
    payload = BoonPayload.from_dict({"boon_type": "ATTRIBUTE_ENHANCEMENT", "target_attribute": "aptitude", "value": 1})
    assert payload == BoonPayload(BoonType.ATTRIBUTE_ENHANCEMENT, "aptitude", 1)
    assert payload.to_dict()["boon_type"] == "ATTRIBUTE_ENHANCEMENT"


def test_progress_from_dict_accepts_stored_trait_column() -> None:
    progress = UserThemeProgress.from_dict({"level": 0, "current_xp": -5, "acquired_traits": ["a", "a", 3, "b"]})
    assert progress.level == 1
    assert progress.current_xp == 0
    assert progress.acquired_trait_keys == ["a", "b"]
    assert progress.is_fresh is False


def test_run_stats_refresh_clamps_and_ignores_malformed_values() -> None:
    attrs = effective_attributes(BaseAttributes(), UserThemeProgress(max_willpower_bonus=5))
    stats = RunStats.fresh(attrs)
    assert (stats.current_integrity, stats.current_willpower) == (100, 55)

    stats.refresh_from_dashboard(
        {"current_integrity": "140", "current_willpower": "tired", "strain_level": 0, "active_conditions": "Bleeding, Chilled"},
        attrs,
    )
    assert stats.current_integrity == 100
    assert stats.current_willpower == 55
    assert stats.strain_level == 1
    assert stats.to_dict()["active_conditions"] == ["Bleeding", "Chilled"]

    stats.refresh_from_dashboard({"current_integrity": -4, "active_conditions": []}, attrs)
    assert stats.current_integrity == 0
    assert stats.conditions == set()
