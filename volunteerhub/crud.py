"""CRUD helpers for users, events, registrations, and saved events."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from sqlalchemy import DateTime, Float, String, func, insert, literal, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from .errors import (
    CapacityExceededError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from .models import (
    ALLOWED_TRANSITIONS,
    Event,
    EventStatus,
    Registration,
    Role,
    SavedEvent,
    User,
)
from .utils import parse_event_date, utcnow

VALID_ROLES = {role.value for role in Role}


def _now() -> datetime:
    return utcnow()


def _clean(value: str | None) -> str:
    return (value or "").strip()


# -------- users --------


def get_user_by_email(session: Session, email: str) -> User | None:
    normalized = _clean(email).lower()
    if not normalized:
        return None
    stmt = select(User).where(User.email == normalized)
    return session.scalars(stmt).first()


def create_user(
    session: Session,
    *,
    first_name: str,
    last_name: str,
    email: str,
    role: str = Role.VOLUNTEER.value,
) -> User:
    """Create a user; rejects unknown roles and duplicate emails."""
    normalized_role = _clean(role).lower()
    if normalized_role not in VALID_ROLES:
        raise ValueError(f"Invalid role {role!r}")
    normalized_email = _clean(email).lower()
    if not normalized_email:
        raise ValueError("Email is required")
    if get_user_by_email(session, normalized_email):
        raise ValueError("A user with that email already exists")
    user = User(
        first_name=_clean(first_name),
        last_name=_clean(last_name),
        email=normalized_email,
        role=normalized_role,
    )
    session.add(user)
    session.flush()
    return user


# -------- events --------


def get_event(session: Session, event_id: str) -> Event | None:
    return session.get(Event, event_id)


def _get_approved_event(session: Session, event_id: str) -> Event:
    event = get_event(session, event_id)
    if not event or event.status != EventStatus.APPROVED.value:
        raise NotFoundError("Event not found")
    return event


def create_event(
    session: Session,
    *,
    owner_id: str,
    title: str | None,
    description: str | None,
    category: str | None,
    date: object,
    start_time: str | None = None,
    end_time: str | None = None,
    address: str | None = None,
    capacity: int | None = None,
    image_url: str | None = None,
) -> Event:
    """Create a new event awaiting moderation."""
    title = _clean(title)
    description = _clean(description)
    category = _clean(category)
    if not title or not description or not category or date in (None, ""):
        raise ValidationError("Missing required fields")
    try:
        parsed_date = parse_event_date(date)
    except (TypeError, ValueError) as exc:
        raise ValidationError("Invalid date") from exc
    if parsed_date is None:
        raise ValidationError("Missing required fields")
    if capacity is not None and capacity < 0:
        raise ValidationError("Capacity must be a non-negative integer")

    event = Event(
        title=title,
        description=description,
        category=category,
        date=parsed_date,
        start_time=start_time,
        end_time=end_time,
        address=address,
        capacity=capacity,
        image_url=image_url,
        status=EventStatus.PENDING.value,
        owner_id=owner_id,
    )
    session.add(event)
    session.flush()
    return event


def list_approved_events(session: Session) -> Sequence[Event]:
    stmt = (
        select(Event)
        .where(Event.status == EventStatus.APPROVED.value)
        .order_by(Event.date.asc())
    )
    return session.scalars(stmt).all()


def list_pending_events(session: Session) -> Sequence[Event]:
    """Pending events, oldest submission first."""
    stmt = (
        select(Event)
        .options(selectinload(Event.owner))
        .where(Event.status == EventStatus.PENDING.value)
        .order_by(Event.created_at.asc())
    )
    return session.scalars(stmt).all()


def set_event_status(session: Session, event_id: str, status: str) -> Event:
    """Move an event to ``status`` if the transition table allows it."""
    event = get_event(session, event_id)
    if not event:
        raise NotFoundError("Event not found")
    try:
        target = EventStatus(status)
        current = EventStatus(event.status)
    except ValueError as exc:
        raise InvalidTransitionError(f"Unknown status {status!r}") from exc
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(
            f"Cannot move event from {current.value} to {target.value}"
        )
    event.status = target.value
    event.updated_at = _now()
    session.add(event)
    session.flush()
    return event


def approve_event(session: Session, event_id: str) -> Event:
    return set_event_status(session, event_id, EventStatus.APPROVED.value)


def deny_event(session: Session, event_id: str) -> Event:
    return set_event_status(session, event_id, EventStatus.DENIED.value)


# -------- registrations --------


def get_registration(
    session: Session, *, user_id: str, event_id: str
) -> Registration | None:
    stmt = select(Registration).where(
        Registration.user_id == user_id, Registration.event_id == event_id
    )
    return session.scalars(stmt).first()


def count_registrations(session: Session, event_id: str) -> int:
    stmt = select(func.count(Registration.id)).where(
        Registration.event_id == event_id
    )
    return session.scalar(stmt) or 0


def _insert_registration_within_capacity(
    session: Session, *, event: Event, user_id: str, hours_committed: float | None
) -> Registration | None:
    """Insert only while the event is below capacity, in one statement.

    Returns ``None`` when the guard rejected the row.
    """
    registration_id = str(uuid.uuid4())
    now = _now()
    current_count = (
        select(func.count(Registration.id))
        .where(Registration.event_id == event.id)
        .correlate(None)
        .scalar_subquery()
    )
    source = select(
        literal(registration_id, String()),
        literal(user_id, String()),
        literal(event.id, String()),
        literal(hours_committed, Float()),
        literal(now, DateTime()),
        literal(now, DateTime()),
    ).where(current_count < event.capacity)
    stmt = insert(Registration).from_select(
        ["id", "user_id", "event_id", "hours_committed", "created_at", "updated_at"],
        source,
    )
    result = session.execute(stmt)
    if not result.rowcount:
        return None
    return session.get(Registration, registration_id)


def rsvp_event(
    session: Session,
    *,
    user_id: str,
    event_id: str,
    hours_committed: float | None = None,
) -> tuple[Registration, bool]:
    """Register ``user_id`` for an approved event.

    Returns ``(registration, created)``. A repeat RSVP updates the committed
    hours in place instead of creating a second row.
    """
    event = _get_approved_event(session, event_id)

    existing = get_registration(session, user_id=user_id, event_id=event.id)
    if existing:
        if hours_committed is not None:
            existing.hours_committed = hours_committed
        existing.updated_at = _now()
        session.add(existing)
        session.flush()
        return existing, False

    try:
        if event.has_capacity:
            registration = _insert_registration_within_capacity(
                session,
                event=event,
                user_id=user_id,
                hours_committed=hours_committed,
            )
            if registration is None:
                raise CapacityExceededError("Event is full")
        else:
            registration = Registration(
                user_id=user_id,
                event_id=event.id,
                hours_committed=hours_committed,
            )
            session.add(registration)
            session.flush()
    except IntegrityError as exc:
        session.rollback()
        raise ConflictError("You have already registered") from exc
    return registration, True


def cancel_rsvp(session: Session, *, user_id: str, event_id: str) -> Registration:
    registration = get_registration(session, user_id=user_id, event_id=event_id)
    if not registration:
        raise NotFoundError("Registration not found")
    session.delete(registration)
    session.flush()
    return registration


def registration_counts(session: Session, event_ids: Sequence[str]) -> dict[str, int]:
    """Return ``{event_id: registrations}`` for the given events."""
    if not event_ids:
        return {}
    stmt = (
        select(Registration.event_id, func.count(Registration.id))
        .where(Registration.event_id.in_(list(event_ids)))
        .group_by(Registration.event_id)
    )
    return {event_id: count or 0 for event_id, count in session.execute(stmt).all()}


# -------- saved events --------


def get_saved_event(
    session: Session, *, user_id: str, event_id: str
) -> SavedEvent | None:
    stmt = select(SavedEvent).where(
        SavedEvent.user_id == user_id, SavedEvent.event_id == event_id
    )
    return session.scalars(stmt).first()


def save_event(
    session: Session, *, user_id: str, event_id: str
) -> tuple[SavedEvent, bool]:
    """Bookmark an approved event; saving twice returns the first bookmark."""
    event = _get_approved_event(session, event_id)
    existing = get_saved_event(session, user_id=user_id, event_id=event.id)
    if existing:
        return existing, False
    saved = SavedEvent(user_id=user_id, event_id=event.id)
    session.add(saved)
    try:
        session.flush()
    except IntegrityError as exc:
        session.rollback()
        raise ConflictError("Event already saved") from exc
    return saved, True


def unsave_event(session: Session, *, user_id: str, event_id: str) -> SavedEvent:
    saved = get_saved_event(session, user_id=user_id, event_id=event_id)
    if not saved:
        raise NotFoundError("Saved event not found")
    session.delete(saved)
    session.flush()
    return saved


def list_saved_events(session: Session, user_id: str) -> Sequence[Event]:
    """Approved events bookmarked by ``user_id``, soonest first."""
    saved_ids = select(SavedEvent.event_id).where(SavedEvent.user_id == user_id)
    stmt = (
        select(Event)
        .where(Event.id.in_(saved_ids), Event.status == EventStatus.APPROVED.value)
        .order_by(Event.date.asc())
    )
    return session.scalars(stmt).all()


# -------- organizer dashboard --------


@dataclass(frozen=True)
class EventStats:
    event: Event
    volunteer_count: int
    slots_total: int | None
    slots_available: int | None


@dataclass(frozen=True)
class OrganizerSummary:
    events: list[EventStats]
    events_created: int
    total_volunteers: int
    upcoming_events: int


def organizer_events(
    session: Session, owner_id: str, *, now: datetime | None = None
) -> OrganizerSummary:
    """Owned events with per-event registration counts and totals."""
    now = now or _now()
    stmt = select(Event).where(Event.owner_id == owner_id).order_by(Event.date.asc())
    events = session.scalars(stmt).all()
    counts = registration_counts(session, [event.id for event in events])

    stats: list[EventStats] = []
    total_volunteers = 0
    for event in events:
        volunteer_count = counts.get(event.id, 0)
        total_volunteers += volunteer_count
        slots_total = event.capacity if event.has_capacity else None
        slots_available = (
            max(event.capacity - volunteer_count, 0) if event.has_capacity else None
        )
        stats.append(
            EventStats(
                event=event,
                volunteer_count=volunteer_count,
                slots_total=slots_total,
                slots_available=slots_available,
            )
        )

    upcoming = sum(1 for event in events if event.date and event.date > now)
    return OrganizerSummary(
        events=stats,
        events_created=len(events),
        total_volunteers=total_volunteers,
        upcoming_events=upcoming,
    )
