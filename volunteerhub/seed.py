"""Development helpers for populating fake users, events, and RSVPs."""

from __future__ import annotations

import random
from datetime import datetime, timedelta

from faker import Faker
from sqlalchemy.orm import Session

from .crud import create_event, create_user, get_user_by_email, set_event_status
from .database import get_session
from .models import Event, EventStatus, Registration, Role, SavedEvent, User
from .storage import init_db
from .utils import utcnow

_categories = [
    "Environment",
    "Education",
    "Food Security",
    "Animal Welfare",
    "Health",
    "Community",
]
_event_types = [
    "Park Cleanup",
    "Food Drive",
    "Tutoring Session",
    "Shelter Shift",
    "Tree Planting",
    "Blood Drive",
    "Clothing Sort",
]
# Weighted so most seeded events are browsable.
_moderation_outcomes = [
    EventStatus.APPROVED,
    EventStatus.APPROVED,
    EventStatus.APPROVED,
    EventStatus.PENDING,
    EventStatus.DENIED,
]


def seed_fake_data(
    *,
    organizer_count: int = 2,
    volunteer_count: int = 8,
    max_events_per_organizer: int = 3,
    max_registrations_per_event: int = 5,
) -> dict[str, int]:
    """Populate the database with synthetic users, events, and registrations."""
    if organizer_count < 0:
        raise ValueError("organizer_count must be >= 0")
    if volunteer_count < 0:
        raise ValueError("volunteer_count must be >= 0")
    if max_events_per_organizer < 1:
        raise ValueError("max_events_per_organizer must be >= 1")
    if max_registrations_per_event < 0:
        raise ValueError("max_registrations_per_event must be >= 0")

    init_db()
    fake = Faker()
    stats = {"users": 0, "events": 0, "registrations": 0, "saved_events": 0}

    with get_session() as session:
        volunteers = [
            _create_user(session, fake, Role.VOLUNTEER) for _ in range(volunteer_count)
        ]
        stats["users"] += len(volunteers)
        for _ in range(organizer_count):
            organizer = _create_user(session, fake, Role.ORGANIZER)
            stats["users"] += 1
            for _ in range(random.randint(1, max_events_per_organizer)):
                event = _create_event(session, fake, organizer)
                stats["events"] += 1
                if event.status != EventStatus.APPROVED.value:
                    continue
                registered, saved = _attach_volunteers(
                    session, event, volunteers, max_registrations_per_event
                )
                stats["registrations"] += registered
                stats["saved_events"] += saved

    return stats


def _create_user(session: Session, fake: Faker, role: Role) -> User:
    for _ in range(20):
        email = fake.unique.email()
        if get_user_by_email(session, email):
            continue
        return create_user(
            session,
            first_name=fake.first_name(),
            last_name=fake.last_name(),
            email=email,
            role=role.value,
        )
    raise RuntimeError("Failed to create a unique user email")


def _create_event(session: Session, fake: Faker, organizer: User) -> Event:
    start = _random_start_time()
    capacity = random.choice([None, 5, 10, 20])
    event = create_event(
        session,
        owner_id=organizer.id,
        title=f"{fake.city()} {random.choice(_event_types)}",
        description="\n\n".join(fake.paragraphs(nb=2)),
        category=random.choice(_categories),
        date=start,
        start_time=start.strftime("%H:%M"),
        end_time=(start + timedelta(hours=random.randint(1, 4))).strftime("%H:%M"),
        address=fake.address().replace("\n", ", "),
        capacity=capacity,
        image_url=fake.image_url(),
    )
    outcome = random.choice(_moderation_outcomes)
    if outcome != EventStatus.PENDING:
        set_event_status(session, event.id, outcome.value)
    return event


def _random_start_time() -> datetime:
    day_offset = random.randint(-7, 30)
    minute_offset = random.randint(0, 23 * 60)
    return (utcnow() + timedelta(days=day_offset, minutes=minute_offset)).replace(
        second=0, microsecond=0
    )


def _attach_volunteers(
    session: Session,
    event: Event,
    volunteers: list[User],
    max_registrations: int,
) -> tuple[int, int]:
    if not volunteers:
        return 0, 0
    limit = min(max_registrations, len(volunteers))
    if event.capacity is not None:
        limit = min(limit, event.capacity)
    chosen = random.sample(volunteers, random.randint(0, limit)) if limit else []
    for volunteer in chosen:
        session.add(
            Registration(
                user_id=volunteer.id,
                event_id=event.id,
                hours_committed=random.choice([None, 1.0, 2.0, 4.0]),
            )
        )
    savers = [v for v in volunteers if random.random() < 0.25]
    for volunteer in savers:
        session.add(SavedEvent(user_id=volunteer.id, event_id=event.id))
    session.flush()
    return len(chosen), len(savers)
