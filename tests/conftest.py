"""Shared pytest fixtures for VolunteerHub."""

from __future__ import annotations

import itertools
import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("VOLUNTEERHUB_JWT_SECRET", "test-signing-key")

from volunteerhub import crud, database, storage
from volunteerhub.auth import issue_token
from volunteerhub.models import Base, Event, EventStatus


@pytest.fixture(scope="session", autouse=True)
def configure_in_memory_db():
    """Reuse a single in-memory SQLite database for fast, isolated tests."""

    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    session_factory = scoped_session(
        sessionmaker(
            bind=engine,
            autoflush=False,
            autocommit=False,
            future=True,
            expire_on_commit=False,
        )
    )
    database.engine = engine
    database.SessionLocal = session_factory
    storage.engine = engine
    Base.metadata.create_all(bind=engine)
    yield
    session_factory.remove()


@pytest.fixture(autouse=True)
def clean_database():
    """Reset all tables between tests to guarantee isolation."""

    Base.metadata.drop_all(bind=database.engine)
    Base.metadata.create_all(bind=database.engine)
    yield


@pytest.fixture()
def session():
    db = database.SessionLocal()
    try:
        yield db
    finally:
        db.close()


_user_counter = itertools.count(1)


def _make_user(session, role: str = "volunteer", *, email: str | None = None):
    count = next(_user_counter)
    user = crud.create_user(
        session,
        first_name=role.capitalize(),
        last_name=f"Tester{count}",
        email=email or f"{role}{count}@example.com",
        role=role,
    )
    session.commit()
    return user


def _make_event(
    session,
    owner,
    *,
    status: str = EventStatus.APPROVED.value,
    capacity: int | None = None,
    date: str = "2030-06-01",
    title: str = "Beach Cleanup",
) -> Event:
    event = crud.create_event(
        session,
        owner_id=owner.id,
        title=title,
        description="Pick up litter along the shore",
        category="Environment",
        date=date,
        start_time="09:00",
        end_time="12:00",
        address="1 Ocean Ave",
        capacity=capacity,
    )
    if status != EventStatus.PENDING.value:
        crud.set_event_status(session, event.id, status)
    session.commit()
    return event


@pytest.fixture()
def auth_headers():
    """Return a helper building an Authorization header for a user."""

    def build(user) -> dict[str, str]:
        return {"Authorization": f"Bearer {issue_token(user)}"}

    return build


@pytest.fixture()
def make_user(session):
    """Factory creating committed users: ``make_user("organizer")``."""

    def factory(role: str = "volunteer", **kwargs):
        return _make_user(session, role, **kwargs)

    return factory


@pytest.fixture()
def make_event(session):
    """Factory creating committed events owned by ``owner``."""

    def factory(owner, **kwargs) -> Event:
        return _make_event(session, owner, **kwargs)

    return factory
