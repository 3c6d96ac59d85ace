"""Bearer-token helpers built on python-jose."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Callable

from fastapi import HTTPException, Request, status
from jose import JWTError, jwt

from . import config
from .models import Role, User
from .policy import Caller

logger = logging.getLogger("uvicorn.error")

VALID_ROLES = {role.value for role in Role}


class InvalidTokenError(Exception):
    """Raised when a bearer token cannot be trusted."""


def issue_token(user: User, *, expires_in: timedelta | None = None) -> str:
    """Sign a token carrying the user's id and role."""
    issued_at = datetime.now(UTC)
    expires_at = issued_at + (expires_in or config.settings.token_ttl)
    payload = {
        "sub": user.id,
        "role": user.role,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    return jwt.encode(
        payload, config.ensure_jwt_secret(), algorithm=config.settings.jwt_algorithm
    )


def decode_token(token: str) -> Caller:
    try:
        payload = jwt.decode(
            token,
            config.ensure_jwt_secret(),
            algorithms=[config.settings.jwt_algorithm],
        )
    except JWTError as exc:
        raise InvalidTokenError(str(exc)) from exc
    user_id = payload.get("sub")
    role = payload.get("role")
    if not user_id or role not in VALID_ROLES:
        raise InvalidTokenError("Token is missing a subject or role")
    return Caller(id=str(user_id), role=role)


def get_bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("authorization") or ""
    if not auth_header.lower().startswith("bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def get_optional_caller(request: Request) -> Caller | None:
    """Resolve the caller, treating any bad token as anonymous."""
    token = get_bearer_token(request)
    if not token:
        return None
    try:
        return decode_token(token)
    except InvalidTokenError:
        logger.debug("Ignoring unusable bearer token on %s", request.url.path)
        return None


def get_current_caller(request: Request) -> Caller:
    token = get_bearer_token(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return decode_token(token)
    except InvalidTokenError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc


def require_role(*roles: str) -> Callable[[Request], Caller]:
    """Build a dependency that admits only callers holding one of ``roles``."""
    allowed = set(roles)

    def dependency(request: Request) -> Caller:
        caller = get_current_caller(request)
        if caller.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return caller

    return dependency
