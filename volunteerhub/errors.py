"""Domain errors raised by the CRUD layer and translated at the API boundary."""

from __future__ import annotations


class VolunteerHubError(Exception):
    """Base class; ``status_code`` is the HTTP status the API answers with."""

    status_code = 500
    default_message = "Server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(VolunteerHubError):
    status_code = 400
    default_message = "Invalid request"


class NotFoundError(VolunteerHubError):
    """Absent record, or one the caller is not allowed to see."""

    status_code = 404
    default_message = "Not found"


class ConflictError(VolunteerHubError):
    """A unique (user, event) constraint was violated."""

    status_code = 400
    default_message = "Already exists"


class CapacityExceededError(VolunteerHubError):
    status_code = 400
    default_message = "Event is full"


class InvalidTransitionError(ValidationError):
    default_message = "Invalid status transition"
