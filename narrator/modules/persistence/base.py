from abc import ABC, abstractmethod

from narrator.modules.llm.schemas import LoreUnlock
from narrator.modules.persistence.schemas import SavedGameState, WorldShardOut
from narrator.modules.progression.models import UserThemeProgress
from narrator.modules.progression.rules import BoonPayload


class PersistenceGateway(ABC):
    """Storage seam of a game session. All methods raise PersistenceError on failure."""

    @abstractmethod
    async def save_game_state(self, payload: SavedGameState) -> None:
        pass

    @abstractmethod
    async def load_game_state(self, theme_id: str) -> SavedGameState | None:
        pass

    @abstractmethod
    async def fetch_progress(self, theme_id: str) -> UserThemeProgress:
        pass

    @abstractmethod
    async def save_progress(self, theme_id: str, progress: UserThemeProgress) -> UserThemeProgress:
        pass

    @abstractmethod
    async def apply_boon(self, theme_id: str, payload: BoonPayload) -> UserThemeProgress:
        """Apply a Boon with the authoritative rule and return the stored progress."""

    @abstractmethod
    async def fetch_active_shards(self, theme_id: str) -> list[WorldShardOut]:
        pass

    @abstractmethod
    async def record_lore_unlock(self, theme_id: str, unlock: LoreUnlock) -> WorldShardOut:
        pass
