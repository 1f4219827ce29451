from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, inspect, text

import dispatch_api.main as main_module
from dispatch_api.config import settings
from dispatch_api.db.migration_check import (
    assert_db_is_up_to_date,
    get_alembic_head_revision,
    get_current_db_revision,
    maybe_create_schema,
    prepare_schema,
)
from dispatch_api.main import app


@pytest.fixture
def sqlite_engine(tmp_path: Path):
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'migration-check.db'}")
    try:
        yield engine
    finally:
        engine.dispose()


def _stamp_head(engine) -> str:
    head = get_alembic_head_revision()
    with engine.begin() as connection:
        connection.execute(text("CREATE TABLE alembic_version (version_num VARCHAR(32) NOT NULL)"))
        connection.execute(
            text("INSERT INTO alembic_version (version_num) VALUES (:rev)"), {"rev": head}
        )
    return head


def test_head_revision_is_initial_dispatch_migration():
    assert get_alembic_head_revision() == "20261018_0001"


def test_assert_db_is_up_to_date_fails_when_alembic_version_missing(sqlite_engine):
    assert get_current_db_revision(sqlite_engine) is None
    with pytest.raises(RuntimeError, match="Database schema not up to date"):
        assert_db_is_up_to_date(sqlite_engine)


def test_assert_db_is_up_to_date_passes_at_head(sqlite_engine):
    head = _stamp_head(sqlite_engine)

    assert get_current_db_revision(sqlite_engine) == head
    assert_db_is_up_to_date(sqlite_engine)


def test_maybe_create_schema_creates_dispatch_tables(sqlite_engine, monkeypatch):
    monkeypatch.setattr(settings, "auto_create_schema", True)

    assert maybe_create_schema(sqlite_engine) is True

    tables = set(inspect(sqlite_engine).get_table_names())
    assert {"chefs", "drivers", "orders", "driver_assignments", "assignment_events"} <= tables


def test_maybe_create_schema_is_noop_when_disabled(sqlite_engine, monkeypatch):
    monkeypatch.setattr(settings, "auto_create_schema", False)

    assert maybe_create_schema(sqlite_engine) is False
    assert inspect(sqlite_engine).get_table_names() == []


def test_prepare_schema_enforces_migrations_when_required(sqlite_engine, monkeypatch):
    monkeypatch.setattr(settings, "require_migrations", True)
    monkeypatch.setattr(settings, "auto_create_schema", True)

    with pytest.raises(RuntimeError, match="Database schema not up to date"):
        prepare_schema(sqlite_engine)
    assert "driver_assignments" not in inspect(sqlite_engine).get_table_names()


def test_app_startup_fails_fast_when_revision_missing(sqlite_engine, monkeypatch):
    monkeypatch.setattr(main_module, "engine", sqlite_engine)
    monkeypatch.setattr(settings, "auto_create_schema", False)
    monkeypatch.setattr(settings, "require_migrations", True)

    with pytest.raises(RuntimeError, match="Database schema not up to date"):
        with TestClient(app):
            pass


def test_app_startup_passes_when_db_at_head(sqlite_engine, monkeypatch):
    _stamp_head(sqlite_engine)
    monkeypatch.setattr(main_module, "engine", sqlite_engine)
    monkeypatch.setattr(settings, "auto_create_schema", False)
    monkeypatch.setattr(settings, "require_migrations", True)

    with TestClient(app) as test_client:
        assert test_client.get("/health").status_code == 200
