from __future__ import annotations

from typing import Optional, List, Literal, Union
from pydantic import BaseModel, Field
from pydantic.config import ConfigDict

NAME_MAX_LENGTH = 32


class ModelBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class ProfileOut(ModelBase):
    firstName: str = Field(description="First name.", examples=["Evan"])
    lastName: str = Field(description="Last name.", examples=["Korth"])
    fullName: str = Field(description="First and last name joined by a space.", examples=["Evan Korth"])
    searchable: bool = Field(description="Whether the person appears in people search.")
    bio: Optional[str] = Field(default=None, description="Free-form biography.")
    location: Optional[str] = Field(default=None, description="Free-form location.")
    imageUrl: Optional[str] = Field(default=None, description="Avatar URL.")
    tags: List[str] = Field(default_factory=list, description="Profile tags.", examples=[["seeded"]])


class PersonOut(ModelBase):
    """Hovercard representation of a person."""

    id: int = Field(description="Person ID.", examples=[7])
    guid: str = Field(description="Globally unique person GUID.")
    diasporaHandle: str = Field(description="Federated handle.", examples=["alice@pod.example"])
    name: str = Field(description="Display name (falls back to the handle).", examples=["Alice Smith"])
    url: str = Field(description="Base URL of the person's pod.", examples=["https://pod.example/"])
    avatar: Optional[str] = Field(default=None, description="Avatar URL.")
    local: bool = Field(description="True when the person has an account on this pod.")
    tags: Optional[List[str]] = Field(default=None, description="Profile tags (only with includes=tags).")
    profile: Optional[ProfileOut] = Field(default=None, description="Full profile (only with includes=profile).")


class AspectOut(ModelBase):
    id: int = Field(description="Aspect ID.", examples=[1])
    name: str = Field(description="Aspect name.", examples=["Friends"])
    contactsVisible: bool = Field(description="Members can see each other as contacts of contact.")
    orderId: int = Field(description="Manual ordering index.")


class AspectCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255, description="Aspect name.", examples=["Book club"])
    contactsVisible: bool = Field(default=True, description="Members can see each other.")


class ContactOut(ModelBase):
    id: int = Field(description="Contact ID.")
    personId: int = Field(description="Person the viewer shares with.")
    sharing: bool = Field(description="The person shares with the viewer.")
    receiving: bool = Field(description="The viewer shares with the person.")
    aspectIds: List[int] = Field(default_factory=list, description="Viewer aspects containing the person.")


class PersonHash(BaseModel):
    """Per-result relationship summary for search listings."""

    person: PersonOut
    contact: Optional[ContactOut] = Field(default=None, description="Viewer's contact for the person, if any.")
    isContact: bool = Field(default=False, description="Viewer has a contact for the person.")
    isOwnProfile: bool = Field(default=False, description="The person is the viewer.")


class SearchResponse(BaseModel):
    query: str
    people: List[PersonOut]
    hashes: List[PersonHash]
    lookupQueued: bool = Field(default=False, description="A remote lookup was queued for a handle query.")
    lookupRequestId: Optional[str] = Field(default=None, description="ID of the queued remote lookup.")


class TagPeopleResponse(BaseModel):
    name: str
    count: int
    people: List[PersonOut]


class CommentOut(ModelBase):
    id: int
    authorId: int
    text: str
    createdAt: str


class PostOut(ModelBase):
    id: int = Field(description="Post ID.")
    guid: str = Field(description="Globally unique post GUID.")
    authorId: int = Field(description="Authoring person ID.")
    type: str = Field(description="Post type.", examples=["StatusMessage"])
    text: str = Field(description="Post body.")
    public: bool = Field(description="Visible to everyone.")
    tags: List[str] = Field(default_factory=list, description="Hashtags parsed from the text.")
    createdAt: str = Field(description="ISO timestamp when the post was created.")
    comments: List[CommentOut] = Field(default_factory=list, description="Comments, oldest first.")


class ProfilePageResponse(BaseModel):
    person: PersonOut
    profile: ProfileOut
    isOwnProfile: bool
    contact: Optional[ContactOut] = None
    aspectIds: List[int] = Field(default_factory=list, description="Viewer aspects containing the person.")
    commentingDisabled: bool
    contactsOfContact: List[PersonOut] = Field(default_factory=list)
    contactsOfContactCount: int = 0
    posts: List[PostOut]
    nextMaxTime: Optional[str] = Field(
        default=None,
        description="Pass as maxTime to fetch the next page (null when the page was not full).",
    )


class ContactsOfContactResponse(BaseModel):
    person: PersonOut
    contactsOfContact: List[PersonOut]
    count: int


class TagStreamResponse(BaseModel):
    name: str
    posts: List[PostOut]
    people: List[PersonOut]


class RemoteLookupOut(ModelBase):
    id: str
    handle: str
    status: str
    personId: Optional[int] = None
    error: Optional[str] = None
    createdAt: str
    updatedAt: str


class LookupQueuedResponse(BaseModel):
    queued: bool
    requestId: str


class UserCreate(BaseModel):
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "username": "alice",
                "firstName": "Alice",
                "lastName": "Smith",
                "searchable": True,
            }
        }
    )
    username: str = Field(
        min_length=1,
        max_length=32,
        pattern=r"^[a-z0-9_]+$",
        description="Local username (lowercase letters, digits, underscore).",
    )
    firstName: str = Field(default="", max_length=NAME_MAX_LENGTH, description="First name.")
    lastName: str = Field(default="", max_length=NAME_MAX_LENGTH, description="Last name.")
    searchable: bool = Field(default=True, description="Appear in people search.")
    bio: Optional[str] = Field(default=None, description="Free-form biography.")
    tagString: Optional[str] = Field(default=None, description="Profile tags, e.g. '#cats #hiking'.")


class UserCreatedResponse(BaseModel):
    id: str
    username: str
    sessionToken: str
    person: PersonOut
    aspects: List[AspectOut]


class RemotePersonImport(BaseModel):
    diasporaHandle: str = Field(description="Federated handle.", examples=["eugene@remote.example"])
    guid: Optional[str] = Field(default=None, description="Person GUID (generated when omitted).")
    url: Optional[str] = Field(default=None, description="Pod base URL (derived from the handle when omitted).")
    firstName: str = Field(default="", max_length=NAME_MAX_LENGTH)
    lastName: str = Field(default="", max_length=NAME_MAX_LENGTH)
    searchable: bool = True
    imageUrl: Optional[str] = None
    tagString: Optional[str] = None


class ProfileUpdate(BaseModel):
    firstName: Optional[str] = Field(default=None, max_length=NAME_MAX_LENGTH)
    lastName: Optional[str] = Field(default=None, max_length=NAME_MAX_LENGTH)
    searchable: Optional[bool] = None
    bio: Optional[str] = None
    location: Optional[str] = None
    imageUrl: Optional[str] = None
    tagString: Optional[str] = Field(default=None, description="Replaces all profile tags.")


class ShareRequest(BaseModel):
    personId: int = Field(description="Person to start sharing with.")
    aspectId: int = Field(description="Viewer aspect to add the person to.")


class PostCreate(BaseModel):
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "text": "hello #world",
                "aspectIds": "all",
                "public": False,
            }
        }
    )
    text: str = Field(min_length=1, description="Post body.")
    aspectIds: Union[Literal["all"], List[int]] = Field(
        default="all",
        description="Target aspect IDs, or 'all' for every aspect of the author.",
    )
    public: bool = Field(default=False, description="Visible to everyone.")
    createdAt: Optional[str] = Field(
        default=None,
        description="Optional ISO timestamp override (imports/backfills).",
    )


class CommentCreate(BaseModel):
    text: str = Field(min_length=1, description="Comment body.")
