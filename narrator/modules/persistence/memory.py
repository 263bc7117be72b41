from __future__ import annotations

from narrator.db.models import utc_now_naive
from narrator.modules.llm.schemas import LoreUnlock
from narrator.modules.persistence.base import PersistenceGateway
from narrator.modules.persistence.errors import BOON_REJECTED, PersistenceError
from narrator.modules.persistence.schemas import SavedGameState, WorldShardOut
from narrator.modules.progression.models import UserThemeProgress
from narrator.modules.progression.rules import BoonPayload, BoonRejected, apply_boon_to_progress


class MemoryPersistenceGateway(PersistenceGateway):
    """Process-local storage for anonymous sessions; nothing survives a restart."""

    def __init__(self) -> None:
        self.games: dict[str, SavedGameState] = {}
        self.progress: dict[str, UserThemeProgress] = {}
        self.shards: dict[str, list[WorldShardOut]] = {}

    async def save_game_state(self, payload: SavedGameState) -> None:
        self.games[payload.theme_id] = payload.model_copy(deep=True, update={"new_persistent_lore_unlock": None})
        if payload.new_persistent_lore_unlock is not None:
            await self.record_lore_unlock(payload.theme_id, payload.new_persistent_lore_unlock)

    async def load_game_state(self, theme_id: str) -> SavedGameState | None:
        saved = self.games.get(theme_id)
        return saved.model_copy(deep=True) if saved is not None else None

    async def fetch_progress(self, theme_id: str) -> UserThemeProgress:
        if theme_id not in self.progress:
            self.progress[theme_id] = UserThemeProgress()
        return self.progress[theme_id].copy()

    async def save_progress(self, theme_id: str, progress: UserThemeProgress) -> UserThemeProgress:
        self.progress[theme_id] = progress.copy()
        return progress.copy()

    async def apply_boon(self, theme_id: str, payload: BoonPayload) -> UserThemeProgress:
        current = await self.fetch_progress(theme_id)
        try:
            updated = apply_boon_to_progress(current, payload)
        except BoonRejected as exc:
            raise PersistenceError(str(exc), error_kind=BOON_REJECTED) from exc
        return await self.save_progress(theme_id, updated)

    async def fetch_active_shards(self, theme_id: str) -> list[WorldShardOut]:
        return [shard for shard in self.shards.get(theme_id, []) if shard.is_active_for_new_games]

    async def record_lore_unlock(self, theme_id: str, unlock: LoreUnlock) -> WorldShardOut:
        bucket = self.shards.setdefault(theme_id, [])
        shard = WorldShardOut(
            id=len(bucket) + 1,
            title=unlock.title,
            content=unlock.content,
            key_suggestion=unlock.key_suggestion,
            unlock_condition_description=unlock.unlock_condition_description,
            unlocked_at=utc_now_naive(),
        )
        bucket.append(shard)
        return shard
