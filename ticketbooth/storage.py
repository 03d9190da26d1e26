"""Database initialization and organizer credentials."""

from __future__ import annotations

import shutil
from pathlib import Path

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import inspect

from . import crud
from .config import settings
from .database import engine, get_session
from .errors import NotFound
from .models import Organizer


def init_db() -> None:
    upgrade_database(make_backup=False)


def _alembic_config() -> Config:
    script_location = Path(__file__).resolve().parent / "alembic"
    config = Config()
    config.set_main_option("script_location", str(script_location))
    # Config values go through configparser interpolation.
    config.set_main_option("sqlalchemy.url", str(engine.url).replace("%", "%%"))
    return config


def _current_revision() -> str | None:
    with engine.connect() as connection:
        return MigrationContext.configure(connection).get_current_revision()


def upgrade_database(*, make_backup: bool = True) -> list[str]:
    """Bring the schema to the latest Alembic revision.

    Returns the actions taken; empty when the database is already at head.
    """
    config = _alembic_config()
    head = ScriptDirectory.from_config(config).get_current_head()
    inspector = inspect(engine)
    tracked = inspector.has_table("alembic_version")
    if tracked and _current_revision() == head:
        return []

    actions: list[str] = []
    db_path = Path(settings.database_path)
    if make_backup and db_path.exists():
        backup_path = db_path.with_suffix(db_path.suffix + ".bak")
        shutil.copy(db_path, backup_path)
        actions.append(f"Backup created at {backup_path}")

    if tracked:
        command.upgrade(config, "head")
        actions.append(f"Applied Alembic migrations to {head}")
    elif inspector.has_table("events"):
        # Tables created outside Alembic (create_all): baseline them.
        command.stamp(config, "head")
        actions.append(f"Stamped existing database to {head}")
    else:
        command.upgrade(config, "head")
        actions.append(f"Created schema at {head}")
    return actions


def create_organizer(name: str) -> tuple[str, str]:
    """Create an organizer and return ``(organizer_id, api_token)``."""
    with get_session() as session:
        organizer = crud.create_organizer(session, name=name)
        return organizer.id, organizer.api_token


def rotate_organizer_token(organizer_id: str) -> str:
    with get_session() as session:
        organizer = session.get(Organizer, organizer_id)
        if organizer is None:
            raise NotFound("Organizer not found")
        organizer.api_token = crud.generate_api_token()
        return organizer.api_token
