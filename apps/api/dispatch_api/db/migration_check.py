from __future__ import annotations

from pathlib import Path

from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine

from dispatch_api.config import settings
from dispatch_api.db.base import Base

_ALEMBIC_VERSION_TABLE = "alembic_version"


def alembic_config() -> Config:
    config = Config(str(Path(__file__).resolve().parents[2] / "alembic.ini"))
    config.set_main_option("script_location", str(Path(__file__).resolve().parent / "migrations"))
    return config


def get_alembic_head_revision() -> str:
    return ScriptDirectory.from_config(alembic_config()).get_current_head()


def get_current_db_revision(engine: Engine) -> str | None:
    inspector = inspect(engine)
    if not inspector.has_table(_ALEMBIC_VERSION_TABLE):
        return None

    with engine.connect() as connection:
        result = connection.execute(text("SELECT version_num FROM alembic_version LIMIT 1"))
        return result.scalar_one_or_none()


def assert_db_is_up_to_date(engine: Engine) -> None:
    current = get_current_db_revision(engine)
    head = get_alembic_head_revision()
    if current != head:
        raise RuntimeError(
            f"Database schema not up to date (at {current}, head {head}). "
            "Run: alembic upgrade head"
        )


def maybe_create_schema(engine: Engine) -> bool:
    if not settings.auto_create_schema:
        return False

    import dispatch_api.models  # noqa: F401 (register all SQLAlchemy models)

    Base.metadata.create_all(bind=engine)
    return True


def prepare_schema(engine: Engine) -> None:
    """Startup schema policy: verify migrations, or create tables for dev and tests."""
    if settings.require_migrations:
        assert_db_is_up_to_date(engine)
        return
    maybe_create_schema(engine)
