"""FastAPI application for VolunteerHub."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from .auth import get_optional_caller, require_role
from .config import ensure_jwt_secret
from .crud import (
    approve_event,
    cancel_rsvp,
    create_event,
    deny_event,
    get_event,
    list_approved_events,
    list_pending_events,
    list_saved_events,
    organizer_events,
    rsvp_event,
    save_event,
    unsave_event,
)
from .database import get_db
from .errors import CapacityExceededError, NotFoundError, VolunteerHubError
from .models import Event, Registration, Role, SavedEvent, User
from .policy import Caller, can_view_event
from .storage import init_db
from .utils import load_app_version, parse_hours

# Use uvicorn's error logger so messages get the level prefix in the default log
# format.
logger = logging.getLogger("uvicorn.error")

EVENT_FULL_ERROR = {
    "error": "EventFull",
    "message": "Event is full",
}

APP_VERSION = load_app_version()


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_db()
    ensure_jwt_secret()
    yield


app = FastAPI(title="VolunteerHub", version=APP_VERSION, lifespan=lifespan)

require_volunteer = require_role(Role.VOLUNTEER.value)
require_organizer = require_role(Role.ORGANIZER.value)
require_admin = require_role(Role.ADMIN.value)


@app.exception_handler(CapacityExceededError)
async def capacity_error_handler(request: Request, exc: CapacityExceededError):
    logger.info("Rejected RSVP on full event at %s", request.url.path)
    return JSONResponse(EVENT_FULL_ERROR, status_code=exc.status_code)


@app.exception_handler(VolunteerHubError)
async def domain_error_handler(request: Request, exc: VolunteerHubError):
    return JSONResponse({"detail": exc.message}, status_code=exc.status_code)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        {"detail": exc.detail},
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(OperationalError)
async def operational_error_handler(request: Request, exc: OperationalError):
    raw = str(exc.orig) if getattr(exc, "orig", None) else str(exc)
    if "database is locked" in raw.lower():
        logger.error(
            "SQLite database is locked while handling %s %s",
            request.method,
            request.url.path,
        )
        return JSONResponse(
            {"detail": "The database is busy at the moment. Please try again."},
            status_code=503,
        )
    logger.error(
        "Operational database error on %s %s: %s",
        request.method,
        request.url.path,
        raw,
    )
    return JSONResponse({"detail": "Server error"}, status_code=500)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies answer 400."""
    return JSONResponse({"detail": jsonable_encoder(exc.errors())}, status_code=400)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Log unexpected errors without leaking details to the caller."""
    logger.exception(
        "Unhandled error while processing %s %s", request.method, request.url.path
    )
    return JSONResponse({"detail": "Internal server error"}, status_code=500)


def _iso(value) -> str | None:
    return value.isoformat() if value else None


def _serialize_event(event: Event) -> dict[str, Any]:
    return {
        "id": event.id,
        "title": event.title,
        "description": event.description,
        "category": event.category,
        "date": _iso(event.date),
        "start_time": event.start_time,
        "end_time": event.end_time,
        "address": event.address,
        "capacity": event.capacity,
        "image_url": event.image_url,
        "status": event.status,
        "owner_id": event.owner_id,
        "created_at": _iso(event.created_at),
        "updated_at": _iso(event.updated_at),
    }


def _serialize_owner(owner: User | None) -> dict[str, Any] | None:
    if owner is None:
        return None
    return {
        "id": owner.id,
        "first_name": owner.first_name,
        "last_name": owner.last_name,
        "email": owner.email,
    }


def _serialize_pending_event(event: Event) -> dict[str, Any]:
    return {
        "id": event.id,
        "title": event.title,
        "category": event.category,
        "status": event.status,
        "date": _iso(event.date),
        "start_time": event.start_time,
        "end_time": event.end_time,
        "address": event.address,
        "capacity": event.capacity,
        "image_url": event.image_url,
        "submitted_at": _iso(event.created_at),
        "owner": _serialize_owner(event.owner),
    }


def _serialize_registration(registration: Registration) -> dict[str, Any]:
    return {
        "id": registration.id,
        "user_id": registration.user_id,
        "event_id": registration.event_id,
        "hours_committed": registration.hours_committed,
        "created_at": _iso(registration.created_at),
        "updated_at": _iso(registration.updated_at),
    }


def _serialize_saved_event(saved: SavedEvent) -> dict[str, Any]:
    return {
        "id": saved.id,
        "user_id": saved.user_id,
        "event_id": saved.event_id,
        "created_at": _iso(saved.created_at),
        "updated_at": _iso(saved.updated_at),
    }


class EventCreatePayload(BaseModel):
    title: str | None = None
    description: str | None = None
    category: str | None = None
    date: str | None = Field(None, description="ISO date or datetime string")
    start_time: str | None = None
    end_time: str | None = None
    address: str | None = None
    capacity: int | None = Field(
        None, description="Maximum number of registrations allowed"
    )
    image_url: str | None = None


class RSVPPayload(BaseModel):
    hours_committed: Any = Field(
        None, description="Optional non-negative number of hours"
    )


def _normalize_hours(raw: Any) -> float | None:
    try:
        return parse_hours(raw)
    except (TypeError, ValueError) as exc:
        raise HTTPException(
            status_code=400, detail="hours_committed must be a non-negative number"
        ) from exc


# -------- JSON API (v1) --------


@app.get("/api/v1/health")
def api_health(db: Session = Depends(get_db)):
    db.execute(select(1))
    return {"status": "ok", "version": APP_VERSION}


@app.get("/api/v1/events")
def api_list_events(db: Session = Depends(get_db)):
    events = list_approved_events(db)
    return {"events": [_serialize_event(event) for event in events]}


@app.get("/api/v1/events/saved")
def api_list_saved_events(
    caller: Caller = Depends(require_volunteer), db: Session = Depends(get_db)
):
    events = list_saved_events(db, caller.id)
    return {"events": [_serialize_event(event) for event in events]}


@app.get("/api/v1/events/{event_id}")
def api_get_event(
    event_id: str,
    caller: Caller | None = Depends(get_optional_caller),
    db: Session = Depends(get_db),
):
    event = get_event(db, event_id)
    if not event or not can_view_event(event, caller):
        raise NotFoundError("Event not found")
    return {"event": _serialize_event(event)}


@app.post("/api/v1/events", status_code=201)
def api_create_event(
    payload: EventCreatePayload,
    caller: Caller = Depends(require_organizer),
    db: Session = Depends(get_db),
):
    event = create_event(
        db,
        owner_id=caller.id,
        title=payload.title,
        description=payload.description,
        category=payload.category,
        date=payload.date,
        start_time=payload.start_time,
        end_time=payload.end_time,
        address=payload.address,
        capacity=payload.capacity,
        image_url=payload.image_url,
    )
    logger.info("Organizer %s submitted event %s for review", caller.id, event.id)
    return {"event": _serialize_event(event)}


@app.post("/api/v1/events/{event_id}/rsvp")
def api_rsvp(
    event_id: str,
    response: Response,
    payload: RSVPPayload | None = None,
    caller: Caller = Depends(require_volunteer),
    db: Session = Depends(get_db),
):
    hours = _normalize_hours(payload.hours_committed if payload else None)
    registration, created = rsvp_event(
        db, user_id=caller.id, event_id=event_id, hours_committed=hours
    )
    if created:
        logger.info("Volunteer %s registered for event %s", caller.id, event_id)
    response.status_code = 201 if created else 200
    return {"registration": _serialize_registration(registration)}


@app.delete("/api/v1/events/{event_id}/rsvp")
def api_cancel_rsvp(
    event_id: str,
    caller: Caller = Depends(require_volunteer),
    db: Session = Depends(get_db),
):
    registration = cancel_rsvp(db, user_id=caller.id, event_id=event_id)
    logger.info("Volunteer %s canceled RSVP for event %s", caller.id, event_id)
    return {
        "message": "RSVP canceled",
        "registration": _serialize_registration(registration),
    }


@app.post("/api/v1/events/{event_id}/save")
def api_save_event(
    event_id: str,
    response: Response,
    caller: Caller = Depends(require_volunteer),
    db: Session = Depends(get_db),
):
    saved, created = save_event(db, user_id=caller.id, event_id=event_id)
    if created:
        logger.info("Volunteer %s saved event %s", caller.id, event_id)
    response.status_code = 201 if created else 200
    return {"saved_event": _serialize_saved_event(saved)}


@app.delete("/api/v1/events/{event_id}/save")
def api_unsave_event(
    event_id: str,
    caller: Caller = Depends(require_volunteer),
    db: Session = Depends(get_db),
):
    saved = unsave_event(db, user_id=caller.id, event_id=event_id)
    logger.info("Volunteer %s removed saved event %s", caller.id, event_id)
    return {
        "message": "Event removed from saved list",
        "saved_event": _serialize_saved_event(saved),
    }


@app.get("/api/v1/admin/events/pending")
def api_list_pending_events(
    _: Caller = Depends(require_admin), db: Session = Depends(get_db)
):
    events = list_pending_events(db)
    return {"events": [_serialize_pending_event(event) for event in events]}


@app.post("/api/v1/admin/events/{event_id}/approve")
def api_approve_event(
    event_id: str,
    caller: Caller = Depends(require_admin),
    db: Session = Depends(get_db),
):
    event = approve_event(db, event_id)
    logger.info("Admin %s approved event %s", caller.id, event.id)
    return {"event": _serialize_event(event)}


@app.post("/api/v1/admin/events/{event_id}/deny")
def api_deny_event(
    event_id: str,
    caller: Caller = Depends(require_admin),
    db: Session = Depends(get_db),
):
    event = deny_event(db, event_id)
    logger.info("Admin %s denied event %s", caller.id, event.id)
    return {"event": _serialize_event(event)}


@app.get("/api/v1/organizer/events")
def api_organizer_events(
    caller: Caller = Depends(require_organizer), db: Session = Depends(get_db)
):
    summary = organizer_events(db, caller.id)
    events = []
    for stats in summary.events:
        payload = _serialize_event(stats.event)
        payload["volunteer_count"] = stats.volunteer_count
        payload["slots_total"] = stats.slots_total
        payload["slots_available"] = stats.slots_available
        events.append(payload)
    return {
        "events": events,
        "metrics": {
            "upcoming_events": summary.upcoming_events,
            "events_created": summary.events_created,
            "total_volunteers": summary.total_volunteers,
        },
    }
