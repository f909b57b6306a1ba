from __future__ import annotations

import os
import secrets
from dataclasses import dataclass
from fastapi import Header, HTTPException, status
from sqlmodel import select

from .db import get_session
from .models import User, Person


@dataclass(frozen=True)
class Viewer:
    user_id: str
    person_id: int
    username: str


def _configured_token() -> str | None:
    token = os.getenv("PODPEOPLE_TOKEN", "").strip()
    return token or None


def _validate_token(value: str | None) -> None:
    configured = _configured_token()
    if not configured:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Server token is not configured. Set PODPEOPLE_TOKEN.",
        )
    provided = (value or "").strip()
    if not provided or not secrets.compare_digest(provided, configured):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def require_token(
    x_podpeople_token: str | None = Header(
        default=None,
        alias="X-Podpeople-Token",
        description="Server token required for admin operations (registration, remote imports).",
        example="your-token-here",
    ),
) -> None:
    _validate_token(x_podpeople_token)


def new_session_token() -> str:
    return secrets.token_urlsafe(32)


def resolve_viewer(session_token: str | None) -> Viewer | None:
    """Map a session token to the signed-in viewer; None means anonymous."""
    provided = (session_token or "").strip()
    if not provided:
        return None
    with get_session() as session:
        user = session.exec(select(User).where(User.sessionToken == provided)).first()
        if not user:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid session")
        person = session.exec(select(Person).where(Person.ownerId == user.id)).first()
        if not person or person.id is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid session")
        return Viewer(user_id=user.id, person_id=person.id, username=user.username)


def current_viewer(
    x_podpeople_session: str | None = Header(
        default=None,
        alias="X-Podpeople-Session",
        description="Session token of the signed-in user (omit for anonymous access).",
    ),
) -> Viewer | None:
    return resolve_viewer(x_podpeople_session)


def require_viewer(
    x_podpeople_session: str | None = Header(
        default=None,
        alias="X-Podpeople-Session",
        description="Session token of the signed-in user.",
    ),
) -> Viewer:
    viewer = resolve_viewer(x_podpeople_session)
    if viewer is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Sign in required")
    return viewer
