from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from narrator.db.base import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


def utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class GameState(Base):
    __tablename__ = "game_states"
    __table_args__ = (
        UniqueConstraint("user_id", "theme_id", name="uq_game_states_user_theme"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), index=True)
    theme_id: Mapped[str] = mapped_column(String(64), index=True)
    player_identifier: Mapped[str] = mapped_column(String(255), default="")
    game_history: Mapped[list] = mapped_column(JSONType, default=list)
    game_history_summary: Mapped[str] = mapped_column(Text, default="")
    game_history_lore: Mapped[str] = mapped_column(Text, default="")
    last_dashboard_updates: Mapped[dict] = mapped_column(JSONType, default=dict)
    last_game_state_indicators: Mapped[dict] = mapped_column(JSONType, default=dict)
    current_prompt_type: Mapped[str] = mapped_column(String(64), default="default")
    current_narrative_language: Mapped[str] = mapped_column(String(16), default="en")
    last_suggested_actions: Mapped[list] = mapped_column(JSONType, default=list)
    panel_states: Mapped[dict] = mapped_column(JSONType, default=dict)
    input_placeholder: Mapped[str] = mapped_column(Text, default="")
    model_name_used: Mapped[str] = mapped_column(String(128), default="")
    is_boon_selection_pending: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive, onupdate=utc_now_naive, index=True)


class UserThemeProgress(Base):
    __tablename__ = "user_theme_progress"
    __table_args__ = (
        UniqueConstraint("user_id", "theme_id", name="uq_user_theme_progress_user_theme"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), index=True)
    theme_id: Mapped[str] = mapped_column(String(64), index=True)
    level: Mapped[int] = mapped_column(Integer, default=1)
    current_xp: Mapped[int] = mapped_column(Integer, default=0)
    max_integrity_bonus: Mapped[int] = mapped_column(Integer, default=0)
    max_willpower_bonus: Mapped[int] = mapped_column(Integer, default=0)
    aptitude_bonus: Mapped[int] = mapped_column(Integer, default=0)
    resilience_bonus: Mapped[int] = mapped_column(Integer, default=0)
    acquired_traits: Mapped[list] = mapped_column(JSONType, default=list)
    is_boon_selection_pending: Mapped[bool] = mapped_column(Boolean, default=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive, onupdate=utc_now_naive, index=True)


class WorldShard(Base):
    __tablename__ = "world_shards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), index=True)
    theme_id: Mapped[str] = mapped_column(String(64), index=True)
    title: Mapped[str] = mapped_column(String(255))
    content: Mapped[str] = mapped_column(Text, default="")
    key_suggestion: Mapped[str] = mapped_column(String(255), default="")
    unlock_condition_description: Mapped[str] = mapped_column(Text, default="")
    is_active_for_new_games: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    unlocked_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive, index=True)
