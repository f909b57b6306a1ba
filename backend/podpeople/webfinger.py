"""Remote person discovery over WebFinger (RFC 7033)."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests
from fastapi import BackgroundTasks, HTTPException
from sqlmodel import Session, select

from .accounts import import_remote_person
from .common import POD_HOST, create_id, normalize_handle, now_iso
from .db import get_session
from .events import event_hub
from .logs import get_logger, log_event
from .models import Person, RemoteLookup
from .schemas import RemotePersonImport

logger = get_logger("webfinger")

REL_SEED_LOCATION = "http://joindiaspora.com/seed_location"
REL_GUID = "http://joindiaspora.com/guid"
REL_PROFILE_PAGE = "http://webfinger.net/rel/profile-page"
REL_AVATAR = "http://webfinger.net/rel/avatar"


def _env_float(name: str, default: float, *, minimum: float, maximum: float) -> float:
    raw = str(os.getenv(name) or "").strip()
    if raw:
        try:
            value = float(raw)
        except ValueError:
            value = default
    else:
        value = default
    return max(minimum, min(maximum, value))


def _timeout_seconds() -> float:
    return _env_float("PODPEOPLE_WEBFINGER_TIMEOUT_SECONDS", 10.0, minimum=1.0, maximum=120.0)


def _scheme() -> str:
    return (os.getenv("PODPEOPLE_WEBFINGER_SCHEME") or "https").strip().lower() or "https"


class WebfingerError(Exception):
    pass


@dataclass
class WebfingerProfile:
    handle: str
    guid: Optional[str]
    url: Optional[str]
    first_name: str
    last_name: str
    image_url: Optional[str]


def webfinger_endpoint(handle: str) -> str:
    host = handle.split("@", 1)[1]
    return f"{_scheme()}://{host}/.well-known/webfinger"


def fetch_jrd(handle: str, *, timeout: float | None = None) -> Dict[str, Any] | None:
    """Fetch the JRD document for a handle; None when the remote pod does not know it."""
    handle = normalize_handle(handle)
    if "@" not in handle:
        raise WebfingerError(f"not a handle: {handle!r}")
    res = requests.get(
        webfinger_endpoint(handle),
        params={"resource": f"acct:{handle}"},
        headers={"Accept": "application/jrd+json, application/json"},
        timeout=timeout or _timeout_seconds(),
    )
    if res.status_code in (404, 410):
        return None
    res.raise_for_status()
    try:
        doc = res.json()
    except ValueError as exc:
        raise WebfingerError("webfinger response is not JSON") from exc
    if not isinstance(doc, dict):
        raise WebfingerError("webfinger response is not a JSON object")
    return doc


def _property(properties: Dict[str, Any], suffix: str) -> str:
    for key, value in properties.items():
        if str(key).rstrip("/").endswith(suffix) and isinstance(value, str):
            return value.strip()
    return ""


def parse_jrd(handle: str, doc: Dict[str, Any]) -> WebfingerProfile:
    raw_links = doc.get("links") or []
    if not isinstance(raw_links, list):
        raise WebfingerError("webfinger links must be a list")
    properties = doc.get("properties") or {}
    if not isinstance(properties, dict):
        raise WebfingerError("webfinger properties must be an object")

    links: Dict[str, str] = {}
    for link in raw_links:
        if not isinstance(link, dict):
            continue
        rel = str(link.get("rel") or "").strip()
        href = str(link.get("href") or "").strip()
        if rel and href and rel not in links:
            links[rel] = href

    subject = normalize_handle(str(doc.get("subject") or "").removeprefix("acct:"))
    if subject and subject != normalize_handle(handle):
        raise WebfingerError(f"subject mismatch: asked for {handle}, got {subject}")

    first_name = _property(properties, "first_name") or _property(properties, "given_name")
    last_name = _property(properties, "last_name") or _property(properties, "family_name")
    if not first_name and not last_name:
        full = _property(properties, "name")
        if full:
            first_name, _, last_name = full.partition(" ")

    url = links.get(REL_SEED_LOCATION)
    if not url and links.get(REL_PROFILE_PAGE):
        page = links[REL_PROFILE_PAGE]
        scheme, _, rest = page.partition("://")
        url = f"{scheme}://{rest.split('/', 1)[0]}/" if rest else None

    return WebfingerProfile(
        handle=normalize_handle(handle),
        guid=links.get(REL_GUID),
        url=url,
        first_name=first_name[:32],
        last_name=last_name.strip()[:32],
        image_url=links.get(REL_AVATAR),
    )


def _finish(
    session: Session,
    lookup: RemoteLookup,
    status: str,
    *,
    person_id: int | None = None,
    error: str | None = None,
) -> None:
    lookup.status = status
    lookup.personId = person_id
    lookup.error = error
    lookup.updatedAt = now_iso()
    session.add(lookup)
    session.commit()
    event_hub.publish(
        {
            "type": "person.lookup",
            "userId": lookup.requestedBy,
            "data": {"requestId": lookup.id, "handle": lookup.handle, "status": status, "personId": person_id},
            "eventTs": lookup.updatedAt,
        }
    )


def run_lookup(user_id: str, handle: str, opts: Dict[str, Any] | None = None) -> None:
    """Background job: resolve `handle`, store the person, notify the requesting user."""
    request_id = str((opts or {}).get("requestId") or "")
    handle = normalize_handle(handle)
    with get_session() as session:
        lookup = session.get(RemoteLookup, request_id) if request_id else None
        if lookup is None:
            timestamp = now_iso()
            lookup = RemoteLookup(
                id=request_id or create_id("lookup"),
                handle=handle,
                requestedBy=user_id,
                createdAt=timestamp,
                updatedAt=timestamp,
            )

        existing = session.exec(select(Person).where(Person.diasporaHandle == handle)).first()
        if existing is not None:
            _finish(session, lookup, "found", person_id=existing.id)
            return
        if handle.endswith(f"@{POD_HOST}"):
            _finish(session, lookup, "not_found")
            return

        try:
            doc = fetch_jrd(handle)
            if doc is None:
                _finish(session, lookup, "not_found")
                log_event(logger, "webfinger.not_found", handle=handle, request_id=lookup.id)
                return
            found = parse_jrd(handle, doc)
            person = import_remote_person(
                session,
                RemotePersonImport(
                    diasporaHandle=found.handle,
                    guid=found.guid,
                    url=found.url,
                    firstName=found.first_name,
                    lastName=found.last_name,
                    imageUrl=found.image_url,
                ),
            )
        except (requests.RequestException, WebfingerError, HTTPException) as exc:
            session.rollback()
            detail = exc.detail if isinstance(exc, HTTPException) else exc
            _finish(session, lookup, "failed", error=str(detail)[:500])
            log_event(logger, "webfinger.failed", level=logging.WARNING, handle=handle, request_id=lookup.id, error=exc)
            return
        except Exception as exc:
            session.rollback()
            _finish(session, lookup, "failed", error=f"unexpected error: {type(exc).__name__}")
            logger.exception("webfinger.crashed handle=%s request_id=%s", handle, lookup.id)
            return
        _finish(session, lookup, "found", person_id=person.id)
        log_event(logger, "webfinger.found", handle=handle, request_id=lookup.id, person_id=person.id)


def enqueue_lookup(session: Session, user_id: str, handle: str, background_tasks: BackgroundTasks) -> RemoteLookup:
    """Record a pending lookup and schedule `run_lookup`; returns without waiting for it."""
    timestamp = now_iso()
    lookup = RemoteLookup(
        id=create_id("lookup"),
        handle=normalize_handle(handle),
        requestedBy=user_id,
        status="pending",
        createdAt=timestamp,
        updatedAt=timestamp,
    )
    session.add(lookup)
    session.commit()
    session.refresh(lookup)
    background_tasks.add_task(run_lookup, user_id, lookup.handle, {"requestId": lookup.id})
    log_event(logger, "webfinger.queued", handle=lookup.handle, request_id=lookup.id, user_id=user_id)
    return lookup
