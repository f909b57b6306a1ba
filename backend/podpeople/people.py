from __future__ import annotations

from typing import Iterable
from sqlmodel import Session, select

from .auth import Viewer
from .models import Aspect, AspectMembership, Contact, Person, Profile


def parse_person_id(raw: str | int | None) -> int | None:
    if raw is None:
        return None
    if isinstance(raw, int):
        return raw if raw > 0 else None
    text = str(raw).strip()
    if not (text.isascii() and text.isdigit()):
        return None
    value = int(text)
    # SQLite integers are signed 64-bit.
    if value <= 0 or value >= 2**63:
        return None
    return value


def load_person(session: Session, raw_id: str | int | None) -> Person | None:
    """Find a person by (possibly garbage) id; None covers both invalid and unknown ids."""
    person_id = parse_person_id(raw_id)
    if person_id is None:
        return None
    return session.get(Person, person_id)


def profile_for(session: Session, person: Person) -> Profile:
    profile = session.exec(select(Profile).where(Profile.personId == person.id)).first()
    if profile is None:
        # Remote people imported without a profile still render with empty names.
        profile = Profile(personId=person.id, firstName="", lastName="", searchable=True, tags=[])
    return profile


def profiles_by_person(session: Session, person_ids: Iterable[int]) -> dict[int, Profile]:
    ids = sorted({pid for pid in person_ids if pid is not None})
    if not ids:
        return {}
    rows = session.exec(select(Profile).where(Profile.personId.in_(ids))).all()
    return {row.personId: row for row in rows}


def contact_for(session: Session, viewer: Viewer | None, person: Person) -> Contact | None:
    if viewer is None or person.id is None:
        return None
    return session.exec(
        select(Contact).where(Contact.userId == viewer.user_id, Contact.personId == person.id)
    ).first()


def aspect_ids_for_contact(session: Session, contact: Contact | None) -> list[int]:
    if contact is None or contact.id is None:
        return []
    rows = session.exec(
        select(AspectMembership.aspectId)
        .join(Aspect, Aspect.id == AspectMembership.aspectId)
        .where(AspectMembership.contactId == contact.id)
        .order_by(Aspect.orderId, Aspect.id)
    ).all()
    return [int(row) for row in rows]


def display_name(person: Person, profile: Profile | None) -> str:
    name = profile.full_name if profile else ""
    return name or person.diasporaHandle


def profile_out(profile: Profile) -> dict:
    return {
        "firstName": profile.firstName or "",
        "lastName": profile.lastName or "",
        "fullName": profile.full_name,
        "searchable": bool(profile.searchable),
        "bio": profile.bio,
        "location": profile.location,
        "imageUrl": profile.imageUrl,
        "tags": list(profile.tags or []),
    }


def person_out(person: Person, profile: Profile | None, includes: Iterable[str] = ()) -> dict:
    """Hovercard JSON for a person; `includes` adds optional sections (tags, profile)."""
    wanted = {str(item).strip().lower() for item in includes if str(item).strip()}
    payload = {
        "id": person.id,
        "guid": person.guid,
        "diasporaHandle": person.diasporaHandle,
        "name": display_name(person, profile),
        "url": person.url,
        "avatar": profile.imageUrl if profile else None,
        "local": person.local,
    }
    if "tags" in wanted:
        payload["tags"] = list(profile.tags or []) if profile else []
    if "profile" in wanted and profile is not None:
        payload["profile"] = profile_out(profile)
    return payload


def people_out(session: Session, people: list[Person], includes: Iterable[str] = ()) -> list[dict]:
    profiles = profiles_by_person(session, [p.id for p in people])
    includes = list(includes)
    return [person_out(person, profiles.get(person.id), includes) for person in people]


def contact_out(session: Session, contact: Contact | None) -> dict | None:
    if contact is None:
        return None
    return {
        "id": contact.id,
        "personId": contact.personId,
        "sharing": bool(contact.sharing),
        "receiving": bool(contact.receiving),
        "aspectIds": aspect_ids_for_contact(session, contact),
    }


def parse_includes(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]
