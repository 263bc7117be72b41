from __future__ import annotations

import logging
from dataclasses import dataclass

from narrator.modules.theme.schemas import PANEL_TYPE_HIDDEN_UNTIL_ACTIVE, ThemeConfig
from narrator.modules.theme.store import ThemeStore

logger = logging.getLogger(__name__)

PROMPT_TYPE_INITIAL = "initial"
PROMPT_TYPE_DEFAULT = "default"


@dataclass(slots=True, frozen=True)
class PromptTypeResolution:
    prompt_type: str
    priority: int | None = None


@dataclass(slots=True, frozen=True)
class PanelTransition:
    panel_id: str
    indicator_key: str
    visible: bool
    changed: bool

    def to_dict(self) -> dict:
        return {
            "panel_id": self.panel_id,
            "indicator_key": self.indicator_key,
            "visible": self.visible,
            "changed": self.changed,
        }


def resolve_prompt_type(indicators: dict, theme: ThemeConfig, store: ThemeStore) -> PromptTypeResolution:
    """Pick the prompt type of the highest-priority active indicator that has a template.

    Only values that are exactly ``True`` count. Ties keep the first indicator in theme
    order.
    """
    best_type = PROMPT_TYPE_DEFAULT
    best_priority = -1
    for indicator in theme.dashboard_config.game_state_indicators or []:
        if indicators.get(indicator.id) is not True:
            continue
        if not store.has_valid_prompt(theme.id, indicator.id):
            logger.debug("indicator active without template theme_id=%s indicator=%s", theme.id, indicator.id)
            continue
        priority = int(indicator.priority or 0)
        if priority > best_priority:
            best_type, best_priority = indicator.id, priority
    if best_priority < 0:
        return PromptTypeResolution(prompt_type=PROMPT_TYPE_DEFAULT)
    return PromptTypeResolution(prompt_type=best_type, priority=best_priority)


def panel_transitions(indicators: dict, theme: ThemeConfig, visible: dict[str, bool]) -> list[PanelTransition]:
    out: list[PanelTransition] = []
    for panel in theme.dashboard_config.panels():
        if panel.type != PANEL_TYPE_HIDDEN_UNTIL_ACTIVE or not panel.indicator_key:
            continue
        should_show = indicators.get(panel.indicator_key) is True
        out.append(
            PanelTransition(
                panel_id=panel.id,
                indicator_key=panel.indicator_key,
                visible=should_show,
                changed=bool(visible.get(panel.id, False)) != should_show,
            )
        )
    return out
