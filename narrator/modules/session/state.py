from __future__ import annotations

from dataclasses import dataclass, field

from narrator.modules.llm.schemas import LoreUnlock
from narrator.modules.narrative.actions import SuggestedAction
from narrator.modules.narrative.indicators import PROMPT_TYPE_INITIAL
from narrator.modules.session.history import HistoryLedger


@dataclass(slots=True)
class GameSession:
    """Mutable state of one theme playthrough, owned by its GameController."""

    theme_id: str
    narrative_language: str = "en"
    model_name: str = ""
    history: HistoryLedger = field(default_factory=HistoryLedger)
    prompt_type: str = PROMPT_TYPE_INITIAL
    is_initial_load: bool = True
    last_indicators: dict = field(default_factory=dict)
    last_dashboard_updates: dict = field(default_factory=dict)
    suggested_actions: list[SuggestedAction] = field(default_factory=list)
    player_identifier: str = ""
    input_placeholder: str = ""
    panel_states: dict[str, bool] = field(default_factory=dict)
    cumulative_player_summary: str = ""
    evolved_world_lore: str = ""
    pending_lore_unlock: LoreUnlock | None = None
    use_evolved_world: bool = False
    world_shards_json: str = "[]"

    def reset_volatile(self) -> None:
        self.history.clear()
        self.prompt_type = PROMPT_TYPE_INITIAL
        self.is_initial_load = True
        self.last_indicators = {}
        self.last_dashboard_updates = {}
        self.suggested_actions = []
        self.player_identifier = ""
        self.input_placeholder = ""
        self.panel_states = {}
        self.cumulative_player_summary = ""
        self.evolved_world_lore = ""
        self.pending_lore_unlock = None
        self.use_evolved_world = False
        self.world_shards_json = "[]"
