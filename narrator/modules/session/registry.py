from __future__ import annotations

import logging
import random
import threading
import time
import uuid
from collections.abc import Callable
from functools import lru_cache

from narrator.config import settings
from narrator.modules.llm.base import ModelProxy
from narrator.modules.llm.client import build_model_proxy
from narrator.modules.persistence.base import PersistenceGateway
from narrator.modules.persistence.memory import MemoryPersistenceGateway
from narrator.modules.persistence.service import SqlPersistenceGateway
from narrator.modules.session.controller import GameController
from narrator.modules.session.errors import InvalidInputError, SessionNotFoundError
from narrator.modules.session.state import GameSession
from narrator.modules.theme.store import ThemeStore, get_theme_store

logger = logging.getLogger(__name__)


def default_gateway_factory(user_id: str | None) -> PersistenceGateway:
    if user_id:
        return SqlPersistenceGateway(user_id)
    return MemoryPersistenceGateway()


class SessionRegistry:
    """Live game controllers keyed by session id.

    Signed-in players persist through SQL; anonymous players get a private in-memory
    gateway that lives as long as the session. Sessions untouched for ``idle_ttl_s``
    seconds are evicted on the next create or lookup unless a turn is in flight.
    """

    def __init__(
        self,
        *,
        store: ThemeStore,
        proxy_factory: Callable[[], ModelProxy] = build_model_proxy,
        gateway_factory: Callable[[str | None], PersistenceGateway] = default_gateway_factory,
        rng_factory: Callable[[], random.Random | None] = lambda: None,
        idle_ttl_s: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.proxy_factory = proxy_factory
        self.gateway_factory = gateway_factory
        self.rng_factory = rng_factory
        self._controllers: dict[str, GameController] = {}
        self._owners: dict[str, str | None] = {}
        self._last_seen: dict[str, float] = {}
        self.idle_ttl_s = float(settings.session_idle_ttl_s if idle_ttl_s is None else idle_ttl_s)
        self.clock = clock
        self._lock = threading.Lock()

    def create(self, theme_id: str, *, user_id: str | None = None, language: str | None = None) -> tuple[str, GameController]:
        theme = self.store.get_config(theme_id)
        if theme is None or not theme.playable:
            raise InvalidInputError(f"theme {theme_id} is not available")
        session = GameSession(
            theme_id=theme_id,
            narrative_language=(language or settings.default_narrative_language).strip() or "en",
            model_name=settings.llm_model_paid if user_id else settings.llm_model_free,
        )
        controller = GameController(
            session,
            store=self.store,
            proxy=self.proxy_factory(),
            gateway=self.gateway_factory(user_id),
            recent_window=settings.recent_interaction_window,
            max_action_chars=(
                settings.player_action_max_chars_user if user_id else settings.player_action_max_chars_anonymous
            ),
            rng=self.rng_factory(),
        )
        session_id = str(uuid.uuid4())
        with self._lock:
            now = self.clock()
            self._evict_idle(now)
            self._controllers[session_id] = controller
            self._owners[session_id] = user_id
            self._last_seen[session_id] = now
        logger.info("session created session_id=%s theme_id=%s signed_in=%s", session_id, theme_id, bool(user_id))
        return session_id, controller

    def get(self, session_id: str, *, user_id: str | None = None) -> GameController:
        with self._lock:
            now = self.clock()
            self._evict_idle(now)
            controller = self._controllers.get(session_id)
            owner = self._owners.get(session_id)
            if controller is not None and owner == user_id:
                self._last_seen[session_id] = now
        if controller is None or owner != user_id:
            raise SessionNotFoundError(session_id)
        return controller

    def _evict_idle(self, now: float) -> None:
        if self.idle_ttl_s <= 0:
            return
        expired = [
            session_id
            for session_id, seen in self._last_seen.items()
            if now - seen > self.idle_ttl_s and not self._controllers[session_id].is_processing
        ]
        for session_id in expired:
            self._controllers.pop(session_id, None)
            self._owners.pop(session_id, None)
            self._last_seen.pop(session_id, None)
        if expired:
            logger.info("evicted idle sessions count=%s", len(expired))

    def discard(self, session_id: str) -> None:
        with self._lock:
            self._controllers.pop(session_id, None)
            self._owners.pop(session_id, None)
            self._last_seen.pop(session_id, None)

    def clear(self) -> None:
        with self._lock:
            self._controllers.clear()
            self._owners.clear()
            self._last_seen.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._controllers)


@lru_cache(maxsize=1)
def get_session_registry() -> SessionRegistry:
    return SessionRegistry(store=get_theme_store())
