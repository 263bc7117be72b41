from pathlib import Path

from narrator.modules.narrative.indicators import (
    PROMPT_TYPE_DEFAULT,
    panel_transitions,
    resolve_prompt_type,
)
from narrator.modules.theme.store import ThemeStore
from tests.support.game import THEME_ID, bundled_store, minimal_theme_config, write_theme


def _store_with_indicators(tmp_path: Path, indicators: list[dict], prompts: dict) -> ThemeStore:
    write_theme(tmp_path, "watch", minimal_theme_config("watch", indicators), prompts=prompts)
    return ThemeStore(tmp_path)


def test_highest_priority_active_indicator_wins(tmp_path: Path) -> None:
    store = _store_with_indicators(
        tmp_path,
        [{"id": "a", "priority": 1}, {"id": "b", "priority": 5}],
        {"a": "prompt a", "b": "prompt b"},
    )
    resolution = resolve_prompt_type({"a": True, "b": True}, store.get_config("watch"), store)
    assert resolution.prompt_type == "b"
    assert resolution.priority == 5


def test_indicator_without_template_is_ignored(tmp_path: Path) -> None:
    store = _store_with_indicators(
        tmp_path,
        [{"id": "a", "priority": 1}, {"id": "b", "priority": 5}],
        {"a": "prompt a"},
    )
    assert resolve_prompt_type({"a": True, "b": True}, store.get_config("watch"), store).prompt_type == "a"


def test_only_literal_true_activates_indicator(tmp_path: Path) -> None:
    store = _store_with_indicators(tmp_path, [{"id": "a", "priority": 1}], {"a": "prompt a"})
    theme = store.get_config("watch")
    for value in ("true", 1, None, False):
        assert resolve_prompt_type({"a": value}, theme, store).prompt_type == PROMPT_TYPE_DEFAULT


def test_ties_keep_theme_order_and_negative_priority_never_wins(tmp_path: Path) -> None:
    store = _store_with_indicators(
        tmp_path,
        [{"id": "a", "priority": 2}, {"id": "b", "priority": 2}, {"id": "c", "priority": -3}],
        {"a": "prompt a", "b": "prompt b", "c": "prompt c"},
    )
    theme = store.get_config("watch")
    assert resolve_prompt_type({"a": True, "b": True}, theme, store).prompt_type == "a"
    assert resolve_prompt_type({"c": True}, theme, store).prompt_type == PROMPT_TYPE_DEFAULT


def test_bundled_theme_prefers_combat_over_omen() -> None:
    store = bundled_store()
    theme = store.get_config(THEME_ID)
    resolution = resolve_prompt_type({"combat_active": True, "omen_detected": True}, theme, store)
    assert resolution.prompt_type == "combat_active"


def test_panel_transitions_follow_indicator() -> None:
    theme = bundled_store().get_config(THEME_ID)

    shown = panel_transitions({"combat_active": True}, theme, {})
    assert [t.to_dict() for t in shown] == [
        {"panel_id": "combat-panel-box", "indicator_key": "combat_active", "visible": True, "changed": True}
    ]

    steady = panel_transitions({"combat_active": True}, theme, {"combat-panel-box": True})
    assert steady[0].changed is False

    hidden = panel_transitions({}, theme, {"combat-panel-box": True})
    assert hidden[0].visible is False
    assert hidden[0].changed is True
