from __future__ import annotations

import asyncio
import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from narrator.db import session as db_session
from narrator.db.models import GameState, UserThemeProgress as ProgressRow, WorldShard
from narrator.modules.llm.schemas import LoreUnlock
from narrator.modules.persistence.base import PersistenceGateway
from narrator.modules.persistence.errors import BOON_REJECTED, PERSISTENCE_LOAD, PERSISTENCE_SAVE, PersistenceError
from narrator.modules.persistence.schemas import SavedGameState, WorldShardOut
from narrator.modules.progression.models import UserThemeProgress
from narrator.modules.progression.rules import BoonPayload, BoonRejected, apply_boon_to_progress

logger = logging.getLogger(__name__)


def _progress_from_row(row: ProgressRow) -> UserThemeProgress:
    return UserThemeProgress.from_dict(
        {
            "level": row.level,
            "current_xp": row.current_xp,
            "max_integrity_bonus": row.max_integrity_bonus,
            "max_willpower_bonus": row.max_willpower_bonus,
            "aptitude_bonus": row.aptitude_bonus,
            "resilience_bonus": row.resilience_bonus,
            "acquired_trait_keys": list(row.acquired_traits or []),
            "is_boon_selection_pending": row.is_boon_selection_pending,
        }
    )


def _write_progress(row: ProgressRow, progress: UserThemeProgress) -> None:
    row.level = progress.level
    row.current_xp = progress.current_xp
    row.max_integrity_bonus = progress.max_integrity_bonus
    row.max_willpower_bonus = progress.max_willpower_bonus
    row.aptitude_bonus = progress.aptitude_bonus
    row.resilience_bonus = progress.resilience_bonus
    row.acquired_traits = list(progress.acquired_trait_keys)
    row.is_boon_selection_pending = progress.is_boon_selection_pending


def _shard_out(row: WorldShard) -> WorldShardOut:
    return WorldShardOut(
        id=row.id,
        title=row.title,
        content=row.content,
        key_suggestion=row.key_suggestion,
        unlock_condition_description=row.unlock_condition_description,
        is_active_for_new_games=row.is_active_for_new_games,
        unlocked_at=row.unlocked_at,
    )


class SqlPersistenceGateway(PersistenceGateway):
    """SQLAlchemy-backed storage for one authenticated user.

    Each coroutine runs its blocking unit of work in a worker thread so database I/O
    never stalls the event loop.
    """

    def __init__(self, user_id: str):
        self.user_id = user_id

    def _progress_row(self, db: Session, theme_id: str) -> ProgressRow:
        row = db.execute(
            select(ProgressRow).where(ProgressRow.user_id == self.user_id, ProgressRow.theme_id == theme_id)
        ).scalar_one_or_none()
        if row is None:
            row = ProgressRow(user_id=self.user_id, theme_id=theme_id, acquired_traits=[])
            db.add(row)
            db.flush()
        return row

    def _insert_shard(self, db: Session, theme_id: str, unlock: LoreUnlock) -> WorldShard:
        row = WorldShard(
            user_id=self.user_id,
            theme_id=theme_id,
            title=unlock.title,
            content=unlock.content,
            key_suggestion=unlock.key_suggestion,
            unlock_condition_description=unlock.unlock_condition_description,
        )
        db.add(row)
        db.flush()
        return row

    def _save_game_state(self, payload: SavedGameState) -> None:
        try:
            with db_session.session_scope() as db:
                row = db.execute(
                    select(GameState).where(GameState.user_id == self.user_id, GameState.theme_id == payload.theme_id)
                ).scalar_one_or_none()
                if row is None:
                    row = GameState(user_id=self.user_id, theme_id=payload.theme_id)
                    db.add(row)
                row.player_identifier = payload.player_identifier
                row.game_history = list(payload.game_history)
                row.game_history_summary = payload.game_history_summary
                row.game_history_lore = payload.game_history_lore
                row.last_dashboard_updates = dict(payload.last_dashboard_updates)
                row.last_game_state_indicators = dict(payload.last_game_state_indicators)
                row.current_prompt_type = payload.current_prompt_type
                row.current_narrative_language = payload.current_narrative_language
                row.last_suggested_actions = list(payload.last_suggested_actions)
                row.panel_states = dict(payload.panel_states)
                row.input_placeholder = payload.input_placeholder
                row.model_name_used = payload.model_name_used
                row.is_boon_selection_pending = payload.is_boon_selection_pending
                if payload.new_persistent_lore_unlock is not None:
                    self._insert_shard(db, payload.theme_id, payload.new_persistent_lore_unlock)
        except SQLAlchemyError as exc:
            logger.error("game state save failed user_id=%s theme_id=%s err=%s", self.user_id, payload.theme_id, exc)
            raise PersistenceError("game state save failed", error_kind=PERSISTENCE_SAVE) from exc

    def _load_game_state(self, theme_id: str) -> SavedGameState | None:
        try:
            with db_session.session_scope() as db:
                row = db.execute(
                    select(GameState).where(GameState.user_id == self.user_id, GameState.theme_id == theme_id)
                ).scalar_one_or_none()
                if row is None:
                    return None
                return SavedGameState(
                    theme_id=row.theme_id,
                    player_identifier=row.player_identifier,
                    game_history=list(row.game_history or []),
                    last_dashboard_updates=dict(row.last_dashboard_updates or {}),
                    last_game_state_indicators=dict(row.last_game_state_indicators or {}),
                    current_prompt_type=row.current_prompt_type,
                    current_narrative_language=row.current_narrative_language,
                    last_suggested_actions=list(row.last_suggested_actions or []),
                    panel_states=dict(row.panel_states or {}),
                    input_placeholder=row.input_placeholder,
                    model_name_used=row.model_name_used,
                    game_history_summary=row.game_history_summary,
                    game_history_lore=row.game_history_lore,
                    is_boon_selection_pending=row.is_boon_selection_pending,
                )
        except SQLAlchemyError as exc:
            logger.error("game state load failed user_id=%s theme_id=%s err=%s", self.user_id, theme_id, exc)
            raise PersistenceError("game state load failed", error_kind=PERSISTENCE_LOAD) from exc

    def _fetch_progress(self, theme_id: str) -> UserThemeProgress:
        try:
            with db_session.session_scope() as db:
                return _progress_from_row(self._progress_row(db, theme_id))
        except SQLAlchemyError as exc:
            raise PersistenceError("progress load failed", error_kind=PERSISTENCE_LOAD) from exc

    def _save_progress(self, theme_id: str, progress: UserThemeProgress) -> UserThemeProgress:
        try:
            with db_session.session_scope() as db:
                row = self._progress_row(db, theme_id)
                _write_progress(row, progress)
                db.flush()
                return _progress_from_row(row)
        except SQLAlchemyError as exc:
            raise PersistenceError("progress save failed", error_kind=PERSISTENCE_SAVE) from exc

    def _apply_boon(self, theme_id: str, payload: BoonPayload) -> UserThemeProgress:
        try:
            with db_session.session_scope() as db:
                row = self._progress_row(db, theme_id)
                try:
                    updated = apply_boon_to_progress(_progress_from_row(row), payload)
                except BoonRejected as exc:
                    raise PersistenceError(str(exc), error_kind=BOON_REJECTED) from exc
                _write_progress(row, updated)
                db.flush()
                return _progress_from_row(row)
        except SQLAlchemyError as exc:
            raise PersistenceError("boon apply failed", error_kind=PERSISTENCE_SAVE) from exc

    def _fetch_active_shards(self, theme_id: str) -> list[WorldShardOut]:
        try:
            with db_session.session_scope() as db:
                rows = db.execute(
                    select(WorldShard)
                    .where(
                        WorldShard.user_id == self.user_id,
                        WorldShard.theme_id == theme_id,
                        WorldShard.is_active_for_new_games.is_(True),
                    )
                    .order_by(WorldShard.unlocked_at.asc(), WorldShard.id.asc())
                ).scalars().all()
                return [_shard_out(row) for row in rows]
        except SQLAlchemyError as exc:
            raise PersistenceError("world shard load failed", error_kind=PERSISTENCE_LOAD) from exc

    def _record_lore_unlock(self, theme_id: str, unlock: LoreUnlock) -> WorldShardOut:
        try:
            with db_session.session_scope() as db:
                return _shard_out(self._insert_shard(db, theme_id, unlock))
        except SQLAlchemyError as exc:
            raise PersistenceError("world shard save failed", error_kind=PERSISTENCE_SAVE) from exc

    async def save_game_state(self, payload: SavedGameState) -> None:
        await asyncio.to_thread(self._save_game_state, payload)

    async def load_game_state(self, theme_id: str) -> SavedGameState | None:
        return await asyncio.to_thread(self._load_game_state, theme_id)

    async def fetch_progress(self, theme_id: str) -> UserThemeProgress:
        return await asyncio.to_thread(self._fetch_progress, theme_id)

    async def save_progress(self, theme_id: str, progress: UserThemeProgress) -> UserThemeProgress:
        return await asyncio.to_thread(self._save_progress, theme_id, progress)

    async def apply_boon(self, theme_id: str, payload: BoonPayload) -> UserThemeProgress:
        return await asyncio.to_thread(self._apply_boon, theme_id, payload)

    async def fetch_active_shards(self, theme_id: str) -> list[WorldShardOut]:
        return await asyncio.to_thread(self._fetch_active_shards, theme_id)

    async def record_lore_unlock(self, theme_id: str, unlock: LoreUnlock) -> WorldShardOut:
        return await asyncio.to_thread(self._record_lore_unlock, theme_id, unlock)
