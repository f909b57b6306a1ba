from __future__ import annotations

import argparse
import json
from dataclasses import dataclass
from sqlmodel import Session, delete

from .accounts import register_user, share_with
from .auth import Viewer
from .db import init_db, get_session
from .models import (
    Aspect,
    AspectMembership,
    AspectVisibility,
    Comment,
    Contact,
    Person,
    Post,
    Profile,
    RemoteLookup,
    ShareVisibility,
    User,
)
from .schemas import UserCreate


@dataclass
class SeededUser:
    viewer: Viewer
    session_token: str
    aspect_ids: list[int]


def reset_db(session: Session) -> None:
    for table in (
        RemoteLookup,
        Comment,
        ShareVisibility,
        AspectVisibility,
        Post,
        AspectMembership,
        Contact,
        Aspect,
        Profile,
        Person,
        User,
    ):
        session.exec(delete(table))
    session.commit()


def create_user(session: Session, username: str, first_name: str = "", last_name: str = "", **extra) -> SeededUser:
    user, person, aspects = register_user(
        session,
        UserCreate(username=username, firstName=first_name, lastName=last_name, **extra),
    )
    return SeededUser(
        viewer=Viewer(user_id=user.id, person_id=person.id, username=user.username),
        session_token=user.sessionToken,
        aspect_ids=[aspect.id for aspect in aspects],
    )


def connect_users(session: Session, first: SeededUser, first_aspect_id: int, second: SeededUser, second_aspect_id: int) -> None:
    """Mutual sharing: each user puts the other into the given aspect."""
    share_with(session, first.viewer, second.viewer.person_id, first_aspect_id)
    share_with(session, second.viewer, first.viewer.person_id, second_aspect_id)


def seed_demo(session: Session) -> dict[str, SeededUser]:
    """alice and bob share with each other; eve is a stranger to both."""
    alice = create_user(session, "alice", "Alice", "Smith")
    bob = create_user(session, "bob", "Bob", "Grimm")
    eve = create_user(session, "eve", "Eve", "Doe")
    connect_users(session, alice, alice.aspect_ids[0], bob, bob.aspect_ids[0])
    return {"alice": alice, "bob": bob, "eve": eve}


def main():
    parser = argparse.ArgumentParser(description="Seed podpeople demo users into the database.")
    parser.add_argument("--reset", action="store_true", help="Reset database before seeding")
    parser.add_argument("--reset-only", action="store_true", help="Only reset database")
    args = parser.parse_args()

    init_db()

    with get_session() as session:
        if args.reset or args.reset_only:
            reset_db(session)
        if args.reset_only:
            print("Database reset.")
            return
        seeded = seed_demo(session)
        print(
            json.dumps(
                {name: {"personId": s.viewer.person_id, "sessionToken": s.session_token} for name, s in seeded.items()},
                indent=2,
            )
        )


if __name__ == "__main__":
    main()
