"""Utility helpers for VolunteerHub."""

from __future__ import annotations

import math
from datetime import UTC, date, datetime
from importlib.metadata import PackageNotFoundError, version as pkg_version
from pathlib import Path
import tomllib


def utcnow() -> datetime:
    """Return a naive UTC datetime."""

    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime | None) -> datetime | None:
    """Convert aware datetimes to naive UTC; naive values are assumed UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def parse_event_date(raw: str | date | datetime | None) -> datetime | None:
    """Parse an ISO date or datetime into a naive UTC datetime.

    Returns ``None`` for empty input and raises ``ValueError`` when the value
    cannot be parsed.
    """
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return to_naive_utc(raw)
    if isinstance(raw, date):
        return datetime(raw.year, raw.month, raw.day)
    cleaned = str(raw).strip()
    if not cleaned:
        return None
    if cleaned.endswith("Z"):
        cleaned = cleaned[:-1] + "+00:00"
    return to_naive_utc(datetime.fromisoformat(cleaned))


def parse_hours(raw: object) -> float | None:
    """Return a non-negative float from ``raw`` or raise ``ValueError``.

    ``None`` means the caller did not supply a value.
    """
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise ValueError("boolean is not a number")
    value = float(raw)  # raises ValueError/TypeError on junk
    if math.isnan(value) or math.isinf(value) or value < 0:
        raise ValueError("hours must be a non-negative number")
    return value


def load_app_version() -> str:
    """Return the current package version, falling back to pyproject for dev runs."""
    try:
        return pkg_version("volunteerhub")
    except PackageNotFoundError:
        pyproject_path = Path(__file__).resolve().parent.parent / "pyproject.toml"
        if pyproject_path.exists():
            data = tomllib.loads(pyproject_path.read_text())
            project = data.get("project") or {}
            return str(project.get("version") or "dev")
    return "dev"
