from __future__ import annotations

import os
from pathlib import Path
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel, create_engine, Session

DATABASE_URL = os.getenv("PODPEOPLE_DB_URL", "sqlite:///./data/podpeople.db")

SQLITE_TIMEOUT_SECONDS = float(os.getenv("PODPEOPLE_SQLITE_TIMEOUT_SECONDS", "3"))

connect_args = {}
if DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False, "timeout": SQLITE_TIMEOUT_SECONDS}

engine_kwargs = {"echo": False, "connect_args": connect_args}
if DATABASE_URL.startswith("sqlite"):
    # Fresh connection per session on SQLite.
    engine_kwargs["poolclass"] = NullPool
engine = create_engine(DATABASE_URL, **engine_kwargs)


def is_sqlite() -> bool:
    return DATABASE_URL.startswith("sqlite")


def init_db() -> None:
    if is_sqlite():
        db_path = DATABASE_URL.replace("sqlite:///", "", 1)
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    # Table classes must be registered on the metadata before create_all.
    from . import models  # noqa: F401

    SQLModel.metadata.create_all(engine)

    if is_sqlite():
        with engine.connect() as conn:
            conn.exec_driver_sql("PRAGMA journal_mode=WAL;")
            conn.exec_driver_sql("PRAGMA synchronous=NORMAL;")
            conn.exec_driver_sql("PRAGMA foreign_keys=ON;")
            # Profile pages read a person's posts newest first.
            conn.exec_driver_sql(
                "CREATE INDEX IF NOT EXISTS ix_post_author_created_at "
                'ON post("authorId", "createdAt");'
            )
            conn.exec_driver_sql(
                "CREATE INDEX IF NOT EXISTS ix_sharevisibility_user_post "
                'ON sharevisibility("userId", "postId");'
            )
            conn.commit()


def get_session() -> Session:
    return Session(engine)
