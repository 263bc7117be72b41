from pathlib import Path

import pytest
from sqlalchemy import create_engine

from narrator.config import DEV_DEFAULT_DB_URL, ensure_dev_database_schema, validate_database_url
from narrator.db.base import Base
from tests.support.db_runtime import prepare_sqlite_db


def test_dev_rejects_in_memory_sqlite() -> None:
    with pytest.raises(RuntimeError):
        validate_database_url("dev", "sqlite+pysqlite:///:memory:")


def test_dev_defaults_missing_url() -> None:
    assert validate_database_url("dev", None) == DEV_DEFAULT_DB_URL
    assert validate_database_url("prod", "postgresql://db/narrator") == "postgresql://db/narrator"


def test_migrated_database_passes_schema_check(tmp_path: Path) -> None:
    url = prepare_sqlite_db(tmp_path, "migrated.db")
    ensure_dev_database_schema(url)


def test_create_all_without_alembic_version_fails_schema_check(tmp_path: Path) -> None:
    url = f"sqlite+pysqlite:///{tmp_path / 'bare.db'}"
    Base.metadata.create_all(bind=create_engine(url, future=True))
    with pytest.raises(RuntimeError, match="missing tables: alembic_version"):
        ensure_dev_database_schema(url)
