from __future__ import annotations

import asyncio
import json
import random
from pathlib import Path

from narrator.config import settings
from narrator.modules.llm.providers.fake import FakeModelProxy
from narrator.modules.persistence.errors import PERSISTENCE_SAVE, PersistenceError
from narrator.modules.persistence.memory import MemoryPersistenceGateway
from narrator.modules.progression.models import UserThemeProgress
from narrator.modules.session.controller import GameController
from narrator.modules.session.state import GameSession
from narrator.modules.theme.store import ThemeStore

THEME_ID = "grim_warden"


def bundled_store() -> ThemeStore:
    return ThemeStore(settings.themes_dir)


def turn_reply(narrative: str = "The mist gives way.", **overrides) -> dict:
    reply = {
        "narrative": narrative,
        "dashboard_updates": {},
        "suggested_actions": ["Press on", "Make camp", "Listen"],
        "game_state_indicators": {},
        "xp_awarded": 0,
    }
    reply.update(overrides)
    return reply


class FailingSaveGateway(MemoryPersistenceGateway):
    """Memory gateway whose writes fail once ``fail_saves`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_saves = False

    async def save_game_state(self, payload):
        if self.fail_saves:
            raise PersistenceError("game state save failed", error_kind=PERSISTENCE_SAVE)
        await super().save_game_state(payload)

    async def save_progress(self, theme_id, progress):
        if self.fail_saves:
            raise PersistenceError("progress save failed", error_kind=PERSISTENCE_SAVE)
        return await super().save_progress(theme_id, progress)


def build_controller(
    *,
    store: ThemeStore | None = None,
    proxy: FakeModelProxy | None = None,
    gateway: MemoryPersistenceGateway | None = None,
    theme_id: str = THEME_ID,
    seed: int = 7,
    max_action_chars: int = 600,
) -> GameController:
    session = GameSession(theme_id=theme_id, model_name="test-model")
    return GameController(
        session,
        store=store or bundled_store(),
        proxy=proxy or FakeModelProxy(),
        gateway=gateway or MemoryPersistenceGateway(),
        rng=random.Random(seed),
        max_action_chars=max_action_chars,
    )


def seasoned_gateway(
    theme_id: str = THEME_ID, *, gateway: MemoryPersistenceGateway | None = None, **progress
) -> MemoryPersistenceGateway:
    """Gateway whose stored progress is past the fresh-player trait gate."""
    gateway = gateway or MemoryPersistenceGateway()
    values = {"current_xp": 5, "acquired_trait_keys": ["iron_oath"]}
    values.update(progress)
    gateway.progress[theme_id] = UserThemeProgress(**values)
    return gateway


def started_controller(**kwargs) -> GameController:
    """Controller that has already played its opening turn."""
    kwargs.setdefault("gateway", seasoned_gateway())
    controller = build_controller(**kwargs)
    asyncio.run(controller.start_new_game())
    asyncio.run(controller.submit_identifier("Aldric"))
    return controller


def write_theme(root: Path, theme_id: str, config: dict, *, prompts: dict | None = None, texts: dict | None = None) -> None:
    theme_dir = root / theme_id
    (theme_dir / "prompts").mkdir(parents=True, exist_ok=True)
    (theme_dir / "config.json").write_text(json.dumps(config), encoding="utf-8")
    for key, text in (prompts or {}).items():
        (theme_dir / "prompts" / f"{key}.txt").write_text(text, encoding="utf-8")
    if texts is not None:
        (theme_dir / "texts.json").write_text(json.dumps({"en": texts}), encoding="utf-8")


def minimal_theme_config(theme_id: str, indicators: list[dict] | None = None) -> dict:
    config = {
        "id": theme_id,
        "name_key": f"theme_name_{theme_id}",
        "lore_key": f"theme_lore_{theme_id}",
        "dashboard_config": {"left_panel": [], "right_panel": []},
    }
    if indicators is not None:
        config["dashboard_config"]["game_state_indicators"] = indicators
    return config
