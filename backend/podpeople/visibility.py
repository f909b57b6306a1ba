"""Profile visibility: which posts a viewer sees and who they may interact with."""

from __future__ import annotations

from sqlalchemy import String, cast, or_
from sqlmodel import Session, select

from .auth import Viewer
from .common import normalize_tag
from .models import Aspect, AspectMembership, Comment, Contact, Person, Post, ShareVisibility
from .people import aspect_ids_for_contact, contact_for, contact_out, people_out, person_out, profile_for, profile_out

DEFAULT_POST_LIMIT = 15
CONTACTS_OF_CONTACT_PREVIEW = 36


def is_own_profile(person: Person, viewer: Viewer | None) -> bool:
    return viewer is not None and viewer.person_id == person.id


def visible_posts(
    session: Session,
    person: Person,
    viewer: Viewer | None,
    *,
    max_time: str | None = None,
    limit: int = DEFAULT_POST_LIMIT,
) -> list[Post]:
    """Posts by `person` the viewer may read, newest first.

    Owners see everything; signed-in viewers see public posts plus posts
    shared with them; anonymous viewers see public posts only.
    """
    stmt = select(Post).where(Post.authorId == person.id, Post.type == "StatusMessage")
    if viewer is None:
        stmt = stmt.where(Post.public == True)  # noqa: E712
    elif not is_own_profile(person, viewer):
        shared_with_viewer = select(ShareVisibility.postId).where(ShareVisibility.userId == viewer.user_id)
        stmt = stmt.where(or_(Post.public == True, Post.id.in_(shared_with_viewer)))  # noqa: E712
    if max_time:
        stmt = stmt.where(Post.createdAt < max_time)
    stmt = stmt.order_by(Post.createdAt.desc(), Post.id.desc()).limit(max(1, int(limit)))
    return list(session.exec(stmt).all())


def comments_by_post(session: Session, post_ids: list[int]) -> dict[int, list[Comment]]:
    if not post_ids:
        return {}
    rows = session.exec(
        select(Comment).where(Comment.postId.in_(post_ids)).order_by(Comment.createdAt, Comment.id)
    ).all()
    grouped: dict[int, list[Comment]] = {}
    for row in rows:
        grouped.setdefault(row.postId, []).append(row)
    return grouped


def post_out(post: Post, comments: list[Comment] | None = None) -> dict:
    return {
        "id": post.id,
        "guid": post.guid,
        "authorId": post.authorId,
        "type": post.type,
        "text": post.text,
        "public": bool(post.public),
        "tags": list(post.tags or []),
        "createdAt": post.createdAt,
        "comments": [
            {"id": c.id, "authorId": c.authorId, "text": c.text, "createdAt": c.createdAt}
            for c in (comments or [])
        ],
    }


def posts_out(session: Session, posts: list[Post]) -> list[dict]:
    comments = comments_by_post(session, [post.id for post in posts])
    return [post_out(post, comments.get(post.id)) for post in posts]


def commenting_disabled(person: Person, viewer: Viewer | None, contact: Contact | None) -> bool:
    if viewer is None:
        return True
    if is_own_profile(person, viewer):
        return False
    return contact is None or contact.id is None


def can_view_post(session: Session, post: Post, viewer: Viewer | None) -> bool:
    if post.public:
        return True
    if viewer is None:
        return False
    if post.authorId == viewer.person_id:
        return True
    shared = session.exec(
        select(ShareVisibility.id).where(ShareVisibility.postId == post.id, ShareVisibility.userId == viewer.user_id)
    ).first()
    return shared is not None


def posts_tagged_with(
    session: Session,
    name: str | None,
    viewer: Viewer | None,
    *,
    max_time: str | None = None,
    limit: int = DEFAULT_POST_LIMIT,
) -> list[Post]:
    tag = normalize_tag(name)
    if not tag:
        return []
    stmt = select(Post).where(Post.type == "StatusMessage")
    if viewer is None:
        stmt = stmt.where(Post.public == True)  # noqa: E712
    else:
        shared_with_viewer = select(ShareVisibility.postId).where(ShareVisibility.userId == viewer.user_id)
        stmt = stmt.where(
            or_(
                Post.public == True,  # noqa: E712
                Post.authorId == viewer.person_id,
                Post.id.in_(shared_with_viewer),
            )
        )
    if tag.isascii():
        stmt = stmt.where(cast(Post.tags, String).like(f'%"{tag}"%'))
    if max_time:
        stmt = stmt.where(Post.createdAt < max_time)
    stmt = stmt.order_by(Post.createdAt.desc(), Post.id.desc())
    posts = [post for post in session.exec(stmt).all() if tag in (post.tags or [])]
    return posts[: max(1, int(limit))]


def _incoming_aspect_ids(session: Session, owner_user_id: str, viewer_person_id: int) -> list[int]:
    """The owner's contacts-visible aspects that contain the viewer."""
    rows = session.exec(
        select(Aspect.id)
        .join(AspectMembership, AspectMembership.aspectId == Aspect.id)
        .join(Contact, Contact.id == AspectMembership.contactId)
        .where(
            Aspect.userId == owner_user_id,
            Aspect.contactsVisible == True,  # noqa: E712
            Contact.userId == owner_user_id,
            Contact.personId == viewer_person_id,
        )
    ).all()
    return sorted({int(row) for row in rows})


def contacts_of_contact(session: Session, contact: Contact | None, viewer: Viewer | None) -> list[Person]:
    """People the contact's owner shares alongside the viewer in contacts-visible aspects."""
    if contact is None or viewer is None:
        return []
    person = session.get(Person, contact.personId)
    if person is None or person.ownerId is None:
        return []
    aspect_ids = _incoming_aspect_ids(session, person.ownerId, viewer.person_id)
    if not aspect_ids:
        return []
    stmt = (
        select(Person)
        .join(Contact, Contact.personId == Person.id)
        .join(AspectMembership, AspectMembership.contactId == Contact.id)
        .where(AspectMembership.aspectId.in_(aspect_ids), Person.id != viewer.person_id)
        .distinct()
        .order_by(Person.id)
    )
    return list(session.exec(stmt).all())


def profile_page(
    session: Session,
    person: Person,
    viewer: Viewer | None,
    *,
    max_time: str | None = None,
    limit: int = DEFAULT_POST_LIMIT,
) -> dict:
    profile = profile_for(session, person)
    contact = contact_for(session, viewer, person)
    aspect_ids = aspect_ids_for_contact(session, contact)
    network = contacts_of_contact(session, contact, viewer)
    posts = visible_posts(session, person, viewer, max_time=max_time, limit=limit)
    next_max_time = posts[-1].createdAt if len(posts) >= limit and posts else None
    return {
        "person": person_out(person, profile),
        "profile": profile_out(profile),
        "isOwnProfile": is_own_profile(person, viewer),
        "contact": contact_out(session, contact),
        "aspectIds": aspect_ids,
        "commentingDisabled": commenting_disabled(person, viewer, contact),
        "contactsOfContact": people_out(session, network[:CONTACTS_OF_CONTACT_PREVIEW]),
        "contactsOfContactCount": len(network),
        "posts": posts_out(session, posts),
        "nextMaxTime": next_max_time,
    }
