"""People directory: name/handle search and tag lookups."""

from __future__ import annotations

import re
from urllib.parse import quote
from sqlalchemy import String, cast
from sqlmodel import Session, select

from .auth import Viewer
from .common import looks_like_handle, normalize_handle, normalize_tag
from .models import Contact, Person, Profile
from .people import contact_out, people_out

MIN_QUERY_LENGTH = 2


def tag_redirect_target(query: str | None) -> str | None:
    """`#name` searches are tag lookups; return the tag page path or None."""
    text = (query or "").strip()
    if len(text) > 1 and text.startswith("#"):
        name = text.replace("#", "").strip()
        if name:
            return f"/tags/{quote(name, safe='')}"
    return None


def search_pattern(query: str | None) -> str | None:
    text = (query or "").strip().lower()
    if len(text) < MIN_QUERY_LENGTH:
        return None
    # Escape LIKE wildcards typed by the user; whitespace matches anything in between.
    text = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return "%" + re.sub(r"\s+", "%", text) + "%"


def find_by_handle(session: Session, query: str | None) -> list[Person]:
    """Exact handle matches, regardless of the profile's searchable flag."""
    if not looks_like_handle(query):
        return []
    handle = normalize_handle(query)
    return list(session.exec(select(Person).where(Person.diasporaHandle == handle)).all())


def search_people(session: Session, query: str | None, viewer: Viewer | None, limit: int = 15) -> list[Person]:
    pattern = search_pattern(query)
    exact = find_by_handle(session, query)
    if pattern is None:
        return exact[:limit]

    full_name = Profile.firstName + " " + Profile.lastName
    stmt = (
        select(Person)
        .join(Profile, Profile.personId == Person.id)
        .where(Profile.searchable == True)  # noqa: E712
        .where(full_name.ilike(pattern, escape="\\") | Person.diasporaHandle.ilike(pattern, escape="\\"))
    )
    if viewer is not None:
        stmt = stmt.outerjoin(
            Contact,
            (Contact.personId == Person.id) & (Contact.userId == viewer.user_id),
        ).order_by(Contact.id.is_(None))
    stmt = stmt.order_by(Profile.lastName, Profile.firstName, Person.id).limit(limit)
    matches = list(session.exec(stmt).all())

    seen = {person.id for person in exact}
    results = list(exact)
    for person in matches:
        if person.id in seen:
            continue
        seen.add(person.id)
        results.append(person)
    return results[:limit]


def hashes_for_people(session: Session, people: list[Person], viewer: Viewer | None) -> list[dict]:
    """Relationship summary per search result (used by the html listing)."""
    if not people:
        return []
    contacts: dict[int, Contact] = {}
    if viewer is not None:
        ids = [person.id for person in people]
        rows = session.exec(
            select(Contact).where(Contact.userId == viewer.user_id, Contact.personId.in_(ids))
        ).all()
        contacts = {row.personId: row for row in rows}
    rendered = people_out(session, people)
    hashes = []
    for person, payload in zip(people, rendered):
        contact = contacts.get(person.id)
        hashes.append(
            {
                "person": payload,
                "contact": contact_out(session, contact),
                "isContact": contact is not None,
                "isOwnProfile": viewer is not None and viewer.person_id == person.id,
            }
        )
    return hashes


def people_tagged_with(session: Session, name: str | None, limit: int = 15) -> list[Person]:
    tag = normalize_tag(name)
    if not tag:
        return []
    stmt = (
        select(Person, Profile)
        .join(Profile, Profile.personId == Person.id)
        .where(Profile.searchable == True)  # noqa: E712
        .order_by(Person.id)
    )
    if tag.isascii():
        # Prefilter only; non-ascii tags may be escaped in the stored JSON text.
        stmt = stmt.where(cast(Profile.tags, String).like(f'%"{tag}"%'))
    rows = session.exec(stmt).all()
    people = [person for person, profile in rows if tag in (profile.tags or [])]
    return people[:limit]
