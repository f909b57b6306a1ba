"""Local accounts, aspects, sharing and status messages."""

from __future__ import annotations

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from .auth import Viewer, new_session_token
from .common import (
    create_guid,
    create_id,
    extract_tags,
    local_handle,
    normalize_handle,
    normalize_iso,
    now_iso,
    pod_url,
)
from .events import event_hub
from .logs import get_logger, log_event
from .models import (
    Aspect,
    AspectMembership,
    AspectVisibility,
    Comment,
    Contact,
    Person,
    Post,
    Profile,
    ShareVisibility,
    User,
)
from .schemas import PostCreate, ProfileUpdate, RemotePersonImport, UserCreate
from .visibility import can_view_post, commenting_disabled

logger = get_logger("accounts")

DEFAULT_ASPECTS = ("Family", "Friends", "Work", "Acquaintances")


def register_user(session: Session, payload: UserCreate) -> tuple[User, Person, list[Aspect]]:
    username = payload.username.strip().lower()
    handle = local_handle(username)
    if session.exec(select(User).where(User.username == username)).first():
        raise HTTPException(status_code=409, detail="Username is already taken")
    if session.exec(select(Person).where(Person.diasporaHandle == handle)).first():
        raise HTTPException(status_code=409, detail="Handle is already taken")

    timestamp = now_iso()
    user = User(id=create_id("user"), username=username, sessionToken=new_session_token(), createdAt=timestamp)
    session.add(user)
    session.flush()
    person = Person(
        guid=create_guid(),
        diasporaHandle=handle,
        url=pod_url(),
        ownerId=user.id,
        createdAt=timestamp,
        updatedAt=timestamp,
    )
    session.add(person)
    session.flush()
    session.add(
        Profile(
            personId=person.id,
            firstName=payload.firstName.strip(),
            lastName=payload.lastName.strip(),
            searchable=payload.searchable,
            bio=payload.bio,
            tags=extract_tags(payload.tagString),
            updatedAt=timestamp,
        )
    )
    aspects = [
        Aspect(userId=user.id, name=name, orderId=idx, createdAt=timestamp)
        for idx, name in enumerate(DEFAULT_ASPECTS)
    ]
    session.add_all(aspects)
    session.commit()
    session.refresh(user)
    session.refresh(person)
    for aspect in aspects:
        session.refresh(aspect)
    log_event(logger, "user.registered", user_id=user.id, handle=handle)
    return user, person, aspects


def import_remote_person(session: Session, payload: RemotePersonImport) -> Person:
    """Create or refresh a remote person (federation import / webfinger result)."""
    handle = normalize_handle(payload.diasporaHandle)
    if "@" not in handle:
        raise HTTPException(status_code=400, detail="diasporaHandle must look like user@host")
    host = handle.split("@", 1)[1]
    timestamp = now_iso()
    person = session.exec(select(Person).where(Person.diasporaHandle == handle)).first()
    if person is not None and person.local:
        raise HTTPException(status_code=409, detail="Handle belongs to a local user")
    if person is None:
        person = Person(
            guid=(payload.guid or "").strip() or create_guid(),
            diasporaHandle=handle,
            url=(payload.url or "").strip() or f"https://{host}/",
            ownerId=None,
            createdAt=timestamp,
            updatedAt=timestamp,
        )
        session.add(person)
        session.flush()
    else:
        if payload.url:
            person.url = payload.url.strip()
        person.updatedAt = timestamp
        session.add(person)

    profile = session.exec(select(Profile).where(Profile.personId == person.id)).first()
    if profile is None:
        profile = Profile(personId=person.id)
    profile.firstName = payload.firstName.strip()
    profile.lastName = payload.lastName.strip()
    profile.searchable = payload.searchable
    profile.imageUrl = payload.imageUrl
    profile.tags = extract_tags(payload.tagString)
    profile.updatedAt = timestamp
    session.add(profile)
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        raise HTTPException(status_code=409, detail="Person GUID is already taken") from exc
    session.refresh(person)
    log_event(logger, "person.imported", person_id=person.id, handle=handle)
    return person


def list_aspects(session: Session, viewer: Viewer) -> list[Aspect]:
    return list(
        session.exec(select(Aspect).where(Aspect.userId == viewer.user_id).order_by(Aspect.orderId, Aspect.id)).all()
    )


def create_aspect(session: Session, viewer: Viewer, name: str, contacts_visible: bool = True) -> Aspect:
    existing = list_aspects(session, viewer)
    next_order = max((a.orderId for a in existing), default=-1) + 1
    aspect = Aspect(
        userId=viewer.user_id,
        name=name.strip(),
        contactsVisible=contacts_visible,
        orderId=next_order,
        createdAt=now_iso(),
    )
    session.add(aspect)
    session.commit()
    session.refresh(aspect)
    return aspect


def _owned_aspect(session: Session, viewer: Viewer, aspect_id: int) -> Aspect:
    aspect = session.get(Aspect, aspect_id)
    if aspect is None or aspect.userId != viewer.user_id:
        raise HTTPException(status_code=400, detail=f"Aspect {aspect_id} not found")
    return aspect


def share_with(session: Session, viewer: Viewer, person_id: int, aspect_id: int) -> Contact:
    """Add a person to one of the viewer's aspects, creating the contact on first share."""
    person = session.get(Person, person_id)
    if person is None:
        raise HTTPException(status_code=404, detail="Person not found")
    if person.id == viewer.person_id:
        raise HTTPException(status_code=400, detail="Cannot share with yourself")
    aspect = _owned_aspect(session, viewer, aspect_id)

    contact = session.exec(
        select(Contact).where(Contact.userId == viewer.user_id, Contact.personId == person.id)
    ).first()
    created = contact is None
    if contact is None:
        contact = Contact(userId=viewer.user_id, personId=person.id, receiving=True, createdAt=now_iso())
    contact.receiving = True

    if person.ownerId is not None:
        # The other side now receives from the viewer.
        reverse = session.exec(
            select(Contact).where(Contact.userId == person.ownerId, Contact.personId == viewer.person_id)
        ).first()
        if reverse is not None:
            reverse.sharing = True
            contact.sharing = bool(reverse.receiving)
            session.add(reverse)
    session.add(contact)
    session.flush()

    membership = session.exec(
        select(AspectMembership).where(AspectMembership.aspectId == aspect.id, AspectMembership.contactId == contact.id)
    ).first()
    if membership is None:
        session.add(AspectMembership(aspectId=aspect.id, contactId=contact.id))
    session.commit()
    session.refresh(contact)

    if created and person.ownerId is not None:
        event_hub.publish(
            {
                "type": "contact.started_sharing",
                "userId": person.ownerId,
                "data": {"personId": viewer.person_id},
                "eventTs": contact.createdAt,
            }
        )
    log_event(logger, "contact.shared", user_id=viewer.user_id, person_id=person.id, aspect_id=aspect.id)
    return contact


def _target_aspects(session: Session, viewer: Viewer, aspect_ids) -> list[Aspect]:
    if aspect_ids == "all":
        return list_aspects(session, viewer)
    aspects: list[Aspect] = []
    seen: set[int] = set()
    for aspect_id in aspect_ids or []:
        if aspect_id in seen:
            continue
        seen.add(aspect_id)
        aspects.append(_owned_aspect(session, viewer, aspect_id))
    return aspects


def _local_recipients(session: Session, aspect_ids: list[int]) -> list[str]:
    if not aspect_ids:
        return []
    rows = session.exec(
        select(Person.ownerId)
        .join(Contact, Contact.personId == Person.id)
        .join(AspectMembership, AspectMembership.contactId == Contact.id)
        .where(AspectMembership.aspectId.in_(aspect_ids), Person.ownerId.is_not(None))
        .distinct()
    ).all()
    return sorted({str(row) for row in rows if row})


def create_post(session: Session, viewer: Viewer, payload: PostCreate) -> Post:
    aspects = _target_aspects(session, viewer, payload.aspectIds)
    created_at = now_iso()
    if payload.createdAt:
        created_at = normalize_iso(payload.createdAt)
        if created_at is None:
            raise HTTPException(status_code=400, detail="createdAt must be an ISO timestamp")
    post = Post(
        guid=create_guid(),
        authorId=viewer.person_id,
        text=payload.text,
        public=payload.public,
        tags=extract_tags(payload.text),
        createdAt=created_at,
        updatedAt=created_at,
    )
    session.add(post)
    session.flush()

    aspect_ids = [a.id for a in aspects]
    for aspect_id in aspect_ids:
        session.add(AspectVisibility(postId=post.id, aspectId=aspect_id))
    # Recipients are fixed when the post is created.
    recipients = [user_id for user_id in _local_recipients(session, aspect_ids) if user_id != viewer.user_id]
    for user_id in recipients:
        session.add(ShareVisibility(postId=post.id, userId=user_id))
    session.commit()
    session.refresh(post)

    for user_id in recipients:
        event_hub.publish(
            {"type": "post.created", "userId": user_id, "data": {"postId": post.id, "authorId": post.authorId}}
        )
    log_event(
        logger,
        "post.created",
        post_id=post.id,
        author_id=post.authorId,
        public=post.public,
        aspects=len(aspect_ids),
        recipients=len(recipients),
    )
    return post


def add_comment(session: Session, viewer: Viewer, post_id: int, text: str) -> Comment:
    post = session.get(Post, post_id)
    if post is None or not can_view_post(session, post, viewer):
        raise HTTPException(status_code=404, detail="Post not found")
    author = session.get(Person, post.authorId)
    contact = None
    if author is not None:
        contact = session.exec(
            select(Contact).where(Contact.userId == viewer.user_id, Contact.personId == author.id)
        ).first()
    if author is None or commenting_disabled(author, viewer, contact):
        raise HTTPException(status_code=403, detail="Commenting is disabled for this post")
    comment = Comment(postId=post.id, authorId=viewer.person_id, text=text.strip(), createdAt=now_iso())
    session.add(comment)
    session.commit()
    session.refresh(comment)
    return comment


def update_profile(session: Session, viewer: Viewer, payload: ProfileUpdate) -> Profile:
    profile = session.exec(select(Profile).where(Profile.personId == viewer.person_id)).first()
    if profile is None:
        profile = Profile(personId=viewer.person_id)
    if payload.firstName is not None:
        profile.firstName = payload.firstName.strip()
    if payload.lastName is not None:
        profile.lastName = payload.lastName.strip()
    if payload.searchable is not None:
        profile.searchable = payload.searchable
    if payload.bio is not None:
        profile.bio = payload.bio
    if payload.location is not None:
        profile.location = payload.location
    if payload.imageUrl is not None:
        profile.imageUrl = payload.imageUrl
    if payload.tagString is not None:
        profile.tags = extract_tags(payload.tagString)
    profile.updatedAt = now_iso()
    session.add(profile)
    session.commit()
    session.refresh(profile)
    return profile
