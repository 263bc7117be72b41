from datetime import datetime

from pydantic import BaseModel, Field

from narrator.modules.llm.schemas import LoreUnlock


class SavedGameState(BaseModel):
    theme_id: str
    player_identifier: str = ""
    game_history: list[dict] = Field(default_factory=list)
    last_dashboard_updates: dict = Field(default_factory=dict)
    last_game_state_indicators: dict = Field(default_factory=dict)
    current_prompt_type: str = "default"
    current_narrative_language: str = "en"
    last_suggested_actions: list[dict] = Field(default_factory=list)
    panel_states: dict[str, bool] = Field(default_factory=dict)
    input_placeholder: str = ""
    model_name_used: str = ""
    game_history_summary: str = ""
    game_history_lore: str = ""
    new_persistent_lore_unlock: LoreUnlock | None = None
    is_boon_selection_pending: bool = False


class WorldShardOut(BaseModel):
    id: int
    title: str
    content: str
    key_suggestion: str = ""
    unlock_condition_description: str = ""
    is_active_for_new_games: bool = True
    unlocked_at: datetime | None = None

    def as_lore(self) -> LoreUnlock:
        return LoreUnlock(
            title=self.title,
            content=self.content,
            key_suggestion=self.key_suggestion,
            unlock_condition_description=self.unlock_condition_description,
        )
