from __future__ import annotations

from typing import Optional, List
from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON, UniqueConstraint


class Person(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True, description="Person ID.")
    guid: str = Field(index=True, unique=True, description="Globally unique person GUID.")
    diasporaHandle: str = Field(
        index=True,
        unique=True,
        description="Lowercased federated handle (user@host).",
    )
    url: str = Field(description="Base URL of the pod hosting this person.")
    ownerId: Optional[str] = Field(
        default=None,
        foreign_key="user.id",
        description="Local user owning this person (null => remote person).",
    )
    createdAt: str = Field(description="ISO timestamp when the person was created.")
    updatedAt: str = Field(description="ISO timestamp of last update.")

    @property
    def local(self) -> bool:
        return self.ownerId is not None

    @property
    def remote(self) -> bool:
        return self.ownerId is None


class Profile(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    personId: int = Field(foreign_key="person.id", unique=True, description="Owning person ID.")
    firstName: str = Field(default="", description="First name.")
    lastName: str = Field(default="", description="Last name.")
    searchable: bool = Field(default=True, description="Whether the person appears in people search.")
    bio: Optional[str] = Field(default=None, description="Free-form biography.")
    location: Optional[str] = Field(default=None, description="Free-form location.")
    imageUrl: Optional[str] = Field(default=None, description="Avatar URL.")
    tags: List[str] = Field(
        default_factory=list,
        sa_column=Column(JSON),
        description="Lowercase profile tag names (without '#').",
    )
    updatedAt: str = Field(default="", description="ISO timestamp of last update.")

    @property
    def full_name(self) -> str:
        return f"{self.firstName or ''} {self.lastName or ''}".strip()


class User(SQLModel, table=True):
    id: str = Field(primary_key=True, description="User ID.")
    username: str = Field(index=True, unique=True, description="Local username.")
    sessionToken: str = Field(index=True, unique=True, description="Bearer session token for this user.")
    createdAt: str = Field(description="ISO timestamp when the account was created.")


class Aspect(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True, description="Aspect ID.")
    userId: str = Field(foreign_key="user.id", index=True, description="Owning user ID.")
    name: str = Field(description="Aspect name.")
    contactsVisible: bool = Field(
        default=True,
        description="Whether members of this aspect can see each other as contacts of contact.",
    )
    orderId: int = Field(default=0, description="Manual ordering index (lower comes first).")
    createdAt: str = Field(description="ISO timestamp when the aspect was created.")


class Contact(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("userId", "personId", name="ux_contact_user_person"),)

    id: Optional[int] = Field(default=None, primary_key=True, description="Contact ID.")
    userId: str = Field(foreign_key="user.id", index=True, description="User who owns the contact.")
    personId: int = Field(foreign_key="person.id", index=True, description="Person the user shares with.")
    sharing: bool = Field(default=False, description="The person shares with the user.")
    receiving: bool = Field(default=True, description="The user shares with the person.")
    createdAt: str = Field(description="ISO timestamp when the contact was created.")


class AspectMembership(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("aspectId", "contactId", name="ux_membership_aspect_contact"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    aspectId: int = Field(foreign_key="aspect.id", index=True)
    contactId: int = Field(foreign_key="contact.id", index=True)


class Post(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True, description="Post ID.")
    guid: str = Field(index=True, unique=True, description="Globally unique post GUID.")
    authorId: int = Field(foreign_key="person.id", index=True, description="Authoring person ID.")
    type: str = Field(default="StatusMessage", description="Post type.")
    text: str = Field(default="", description="Post body.")
    public: bool = Field(default=False, description="Visible to everyone, signed in or not.")
    tags: List[str] = Field(
        default_factory=list,
        sa_column=Column(JSON),
        description="Lowercase hashtags parsed from the text.",
    )
    createdAt: str = Field(description="ISO timestamp when the post was created.")
    updatedAt: str = Field(description="ISO timestamp of last update.")


class AspectVisibility(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("postId", "aspectId", name="ux_aspectvisibility_post_aspect"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    postId: int = Field(foreign_key="post.id", index=True)
    aspectId: int = Field(foreign_key="aspect.id", index=True)


class ShareVisibility(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("postId", "userId", name="ux_sharevisibility_post_user"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    postId: int = Field(foreign_key="post.id", index=True)
    userId: str = Field(foreign_key="user.id", description="Local recipient user ID.")


class Comment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True, description="Comment ID.")
    postId: int = Field(foreign_key="post.id", index=True, description="Commented post ID.")
    authorId: int = Field(foreign_key="person.id", description="Authoring person ID.")
    text: str = Field(description="Comment body.")
    createdAt: str = Field(description="ISO timestamp when the comment was created.")


class RemoteLookup(SQLModel, table=True):
    id: str = Field(primary_key=True, description="Lookup request ID.")
    handle: str = Field(index=True, description="Handle being resolved.")
    requestedBy: str = Field(foreign_key="user.id", description="User who asked for the lookup.")
    status: str = Field(
        default="pending",
        description="Lookup status (pending | found | not_found | failed).",
    )
    personId: Optional[int] = Field(default=None, foreign_key="person.id", description="Resolved person ID.")
    error: Optional[str] = Field(default=None, description="Last lookup error.")
    createdAt: str = Field(description="ISO timestamp when the lookup was queued.")
    updatedAt: str = Field(description="ISO timestamp of last status change.")
