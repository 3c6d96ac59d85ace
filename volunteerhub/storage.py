"""Schema management for the VolunteerHub database."""

from __future__ import annotations

import shutil
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from .config import settings
from .database import engine

APP_TABLES = frozenset({"users", "events", "registrations", "saved_events"})


class SchemaStateError(RuntimeError):
    """The database holds some VolunteerHub tables but no migration history."""


def init_db() -> None:
    upgrade_database(make_backup=False)


def _alembic_config() -> Config:
    script_location = Path(__file__).resolve().parent / "alembic"
    url = engine.url.render_as_string(hide_password=False)
    config = Config()
    config.set_main_option("script_location", str(script_location))
    # Option values go through configparser interpolation.
    config.set_main_option("sqlalchemy.url", url.replace("%", "%%"))
    return config


def _schema_state() -> str:
    tables = set(inspect(engine).get_table_names())
    if "alembic_version" in tables:
        return "versioned"
    present = APP_TABLES & tables
    if not present:
        return "empty"
    if present == APP_TABLES:
        return "unversioned"
    raise SchemaStateError(
        "Database has a partial schema without migration history "
        f"(found: {', '.join(sorted(present))})"
    )


def backup_database(db_path: Path) -> Path | None:
    if not db_path.exists():
        return None
    backup_path = db_path.with_suffix(db_path.suffix + ".bak")
    shutil.copy2(db_path, backup_path)
    return backup_path


def upgrade_database(*, make_backup: bool = True) -> list[str]:
    """Bring the schema to the latest migration and report what was done.

    A database built with ``metadata.create_all`` carries every table but no
    version row; it is stamped rather than migrated.
    """
    actions: list[str] = []
    if make_backup:
        backup_path = backup_database(Path(settings.database_path))
        if backup_path:
            actions.append(f"Backup created at {backup_path}")

    state = _schema_state()
    config = _alembic_config()
    if state == "unversioned":
        command.stamp(config, "head")
        actions.append("Stamped existing schema at the latest migration")
    elif state == "empty":
        command.upgrade(config, "head")
        actions.append("Created schema at the latest migration")
    else:
        command.upgrade(config, "head")
        actions.append("Upgraded schema to the latest migration")
    return actions
