"""Who may see which events."""

from __future__ import annotations

from dataclasses import dataclass

from .models import Event, EventStatus, Role


@dataclass(frozen=True)
class Caller:
    """Identity carried by a verified bearer token."""

    id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value


def can_view_event(event: Event, caller: Caller | None) -> bool:
    """Approved events are public; anything else is owner- or admin-only."""
    if event.status == EventStatus.APPROVED.value:
        return True
    if caller is None:
        return False
    if caller.is_admin:
        return True
    return bool(caller.id and event.owner_id and caller.id == event.owner_id)
