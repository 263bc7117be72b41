import os
from collections.abc import Iterable
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import create_engine, inspect, text

PACKAGE_DIR = Path(__file__).resolve().parent
DEV_DEFAULT_DB_URL = "sqlite:///./dev.db"
DEV_REQUIRED_COLUMNS: dict[str, set[str]] = {
    "game_states": {"game_history", "last_game_state_indicators", "is_boon_selection_pending"},
    "user_theme_progress": {"level", "current_xp", "acquired_traits"},
}


class Settings(BaseSettings):
    app_name: str = "narrator"
    env: str = "dev"
    database_url: str = "sqlite+pysqlite:///./narrator.db"
    log_level: str = "INFO"
    server_host: str = "127.0.0.1"
    server_port: int = 8000

    themes_dir: str = str(PACKAGE_DIR / "themes")
    default_theme_id: str = "grim_warden"
    default_narrative_language: str = "en"

    llm_provider: str = "fake"
    llm_proxy_url: str = "http://127.0.0.1:3000/api/v1/gemini/generate"
    llm_proxy_token: str = ""
    llm_model_free: str = "gemini-1.5-flash-latest"
    llm_model_paid: str = "gemini-1.5-pro-latest"
    llm_timeout_s: float = 60.0
    llm_connect_timeout_s: float = 5.0

    recent_interaction_window: int = 10
    player_action_max_chars_anonymous: int = 200
    player_action_max_chars_user: int = 600
    session_idle_ttl_s: float = 3600.0

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


def _is_sqlite_memory_url(db_url: str) -> bool:
    candidate = (db_url or "").strip().lower()
    if not candidate.startswith("sqlite"):
        return False
    if ":memory:" in candidate:
        return True
    return candidate in {
        "sqlite://",
        "sqlite:///",
        "sqlite+pysqlite://",
        "sqlite+pysqlite:///",
    }


def validate_database_url(env: str, db_url: str | None) -> str:
    env_value = (env or "").strip().lower()
    if env_value != "dev":
        return db_url or ""

    if not db_url or not db_url.strip():
        return DEV_DEFAULT_DB_URL

    if _is_sqlite_memory_url(db_url):
        raise RuntimeError(
            "DATABASE_URL cannot be sqlite :memory: when ENV=dev because saved games will disappear. "
            f"Set DATABASE_URL={DEV_DEFAULT_DB_URL} or another file-based sqlite url."
        )
    return db_url


@lru_cache(maxsize=1)
def current_alembic_head_revision() -> str:
    from alembic.config import Config
    from alembic.script import ScriptDirectory

    ini_path = PACKAGE_DIR.parent / "alembic.ini"
    cfg = Config(str(ini_path))
    script_dir = ScriptDirectory.from_config(cfg)
    head = script_dir.get_current_head()
    if not head:
        raise RuntimeError("Unable to resolve Alembic head revision from migration scripts.")
    return str(head)


def ensure_dev_database_schema(
    db_url: str,
    required_tables: Iterable[str] = ("alembic_version", "game_states", "user_theme_progress", "world_shards"),
    required_columns: dict[str, set[str]] = DEV_REQUIRED_COLUMNS,
) -> None:
    if not db_url:
        return
    engine = create_engine(db_url, future=True)
    inspector = inspect(engine)
    tables = set(inspector.get_table_names())
    problems: list[str] = []

    missing_tables = [name for name in required_tables if name not in tables]
    if missing_tables:
        problems.append(f"missing tables: {', '.join(sorted(missing_tables))}")

    if "alembic_version" in tables:
        with engine.connect() as conn:
            db_revision = conn.execute(text("SELECT version_num FROM alembic_version LIMIT 1")).scalar_one_or_none()
        db_revision = str(db_revision or "").strip()
        head = current_alembic_head_revision()
        if db_revision != head:
            problems.append(f"alembic_version={db_revision or 'empty'} (expected {head})")

    for table_name, expected_cols in required_columns.items():
        if table_name not in tables:
            continue
        actual_cols = {col["name"] for col in inspector.get_columns(table_name)}
        for col in sorted(col for col in expected_cols if col not in actual_cols):
            problems.append(f"missing column {table_name}.{col}")

    if problems:
        details = "; ".join(problems)
        raise RuntimeError(
            f"dev schema mismatch for DATABASE_URL={db_url}: {details}. "
            f"Run ENV=dev DATABASE_URL={db_url} python -m alembic upgrade head"
        )


settings = Settings()
_raw_db_url = os.getenv("DATABASE_URL")
if settings.env == "dev":
    settings.database_url = validate_database_url(settings.env, _raw_db_url)
else:
    settings.database_url = validate_database_url(settings.env, _raw_db_url or settings.database_url)
