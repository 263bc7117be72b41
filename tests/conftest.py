from __future__ import annotations

from pathlib import Path

import pytest

from narrator.config import settings
from narrator.db import models  # noqa: F401
from narrator.db import session as db_session
from narrator.db.base import Base
from narrator.modules.session.registry import get_session_registry
from narrator.modules.telemetry.service import reset_turn_telemetry


@pytest.fixture(autouse=True)
def _reset_db_and_defaults(tmp_path: Path) -> None:
    settings.env = "test"
    settings.llm_provider = "fake"
    settings.default_theme_id = "grim_warden"
    settings.player_action_max_chars_anonymous = 200
    settings.player_action_max_chars_user = 600
    db_session.rebind_engine(f"sqlite+pysqlite:///{tmp_path / 'narrator.db'}")
    reset_turn_telemetry()
    get_session_registry().clear()
    Base.metadata.drop_all(bind=db_session.engine)
    Base.metadata.create_all(bind=db_session.engine)
    yield
    reset_turn_telemetry()
    get_session_registry().clear()
    Base.metadata.drop_all(bind=db_session.engine)
