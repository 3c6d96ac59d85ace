"""Alembic environment bound to the VolunteerHub engine."""

from __future__ import annotations

from alembic import context
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url

from volunteerhub import database
from volunteerhub.models import Base

config = context.config


def _engine() -> tuple[Engine, bool]:
    """Return the engine to migrate and whether it was created here."""
    raw_url = config.get_main_option("sqlalchemy.url")
    if not raw_url or make_url(raw_url) == database.engine.url:
        return database.engine, False
    return create_engine(make_url(raw_url), future=True), True


def run_migrations() -> None:
    if context.is_offline_mode():
        raise RuntimeError("VolunteerHub migrations need a live database connection")

    engine, owned = _engine()
    try:
        with engine.connect() as connection:
            context.configure(
                connection=connection,
                target_metadata=Base.metadata,
                compare_type=True,
                render_as_batch=connection.dialect.name == "sqlite",
            )
            with context.begin_transaction():
                context.run_migrations()
    finally:
        if owned:
            engine.dispose()


run_migrations()
