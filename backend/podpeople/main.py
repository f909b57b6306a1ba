from __future__ import annotations

import asyncio
import logging
import os
import queue
import time
from typing import List, Literal, Union

from fastapi import BackgroundTasks, Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse, StreamingResponse

from .accounts import (
    add_comment,
    create_aspect,
    create_post,
    import_remote_person,
    list_aspects,
    register_user,
    share_with,
    update_profile,
)
from .auth import Viewer, current_viewer, require_token, require_viewer
from .common import iso_from_epoch, looks_like_handle, normalize_iso
from .db import get_session, init_db
from .directory import find_by_handle, hashes_for_people, people_tagged_with, search_people, tag_redirect_target
from .events import event_hub
from .logs import configure_logging, get_logger, log_event
from .models import RemoteLookup
from .people import (
    contact_for,
    contact_out,
    load_person,
    parse_includes,
    people_out,
    person_out,
    profile_for,
    profile_out,
)
from .schemas import (
    AspectCreate,
    AspectOut,
    CommentCreate,
    CommentOut,
    ContactOut,
    ContactsOfContactResponse,
    LookupQueuedResponse,
    PersonOut,
    PostCreate,
    PostOut,
    ProfilePageResponse,
    ProfileOut,
    ProfileUpdate,
    RemoteLookupOut,
    RemotePersonImport,
    SearchResponse,
    ShareRequest,
    TagPeopleResponse,
    TagStreamResponse,
    UserCreate,
    UserCreatedResponse,
)
from .visibility import DEFAULT_POST_LIMIT, contacts_of_contact, post_out, posts_out, posts_tagged_with, profile_page
from .webfinger import enqueue_lookup

logger = get_logger("api")

SEARCH_LIMIT = int(os.getenv("PODPEOPLE_SEARCH_LIMIT", "15"))
TAG_PEOPLE_LIMIT = 15
PEOPLE_INDEX_PATH = "/api/people"
STREAM_PING_SECONDS = 25.0

app = FastAPI(
    title="Podpeople API",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    description="People directory, profiles and remote discovery for a federated social pod.",
)

cors_origins = os.getenv("PODPEOPLE_CORS_ORIGINS", "*")
allowed_origins = [o.strip() for o in cors_origins.split(",") if o.strip()]
if not allowed_origins:
    allowed_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    log_event(
        logger,
        "http.request",
        level=logging.DEBUG,
        method=request.method,
        path=request.url.path,
        status=response.status_code,
        ms=round((time.perf_counter() - started) * 1000, 1),
    )
    return response


@app.on_event("startup")
def on_startup() -> None:
    configure_logging()
    init_db()


@app.get("/api/health")
def health() -> dict:
    return {"status": "ok"}


def _parse_max_time(raw: str | None) -> str | None:
    """Accept epoch seconds or an ISO timestamp."""
    if raw is None or not str(raw).strip():
        return None
    text = str(raw).strip()
    if text.isdigit():
        try:
            return iso_from_epoch(int(text))
        except (OverflowError, OSError, ValueError) as exc:
            raise HTTPException(status_code=400, detail="maxTime is out of range") from exc
    normalized = normalize_iso(text)
    if normalized is None:
        raise HTTPException(status_code=400, detail="maxTime must be epoch seconds or an ISO timestamp")
    return normalized


def _people_index_redirect() -> RedirectResponse:
    return RedirectResponse(PEOPLE_INDEX_PATH, status_code=302)


@app.get("/api/people", tags=["people"])
def people_index(
    background_tasks: BackgroundTasks,
    q: str | None = Query(default=None, description="Name or handle to search for; '#tag' redirects to the tag page."),
    term: str | None = Query(default=None, description="Alias of q (autocomplete widgets)."),
    format_: Literal["html", "mobile", "json"] = Query(default="html", alias="format"),
    limit: int = Query(default=SEARCH_LIMIT, ge=1, le=100, description="Max people returned."),
    viewer: Viewer | None = Depends(current_viewer),
):
    """Search people by name or handle.

    `format=json` returns a bare list of people; the html/mobile formats also
    carry per-person relationship hashes and, for handle queries with no local
    match, the id of a queued remote lookup.
    """
    query = (q if q is not None else term) or ""
    target = tag_redirect_target(query)
    if target:
        return RedirectResponse(target, status_code=302)

    with get_session() as session:
        people = search_people(session, query, viewer, limit=limit)
        if format_ == "json":
            return people_out(session, people)

        lookup = None
        if viewer is not None and looks_like_handle(query) and not find_by_handle(session, query):
            lookup = enqueue_lookup(session, viewer.user_id, query, background_tasks)
        payload = SearchResponse(
            query=query,
            people=people_out(session, people),
            hashes=hashes_for_people(session, people, viewer),
            lookupQueued=lookup is not None,
            lookupRequestId=lookup.id if lookup else None,
        )
        return payload


@app.get("/api/people/tags/{name}", response_model=TagPeopleResponse, tags=["people"])
def people_tag_index(
    name: str,
    format_: Literal["html", "mobile", "json", "js"] = Query(default="js", alias="format"),
):
    """Searchable people whose profile carries the tag."""
    with get_session() as session:
        people = people_tagged_with(session, name, limit=TAG_PEOPLE_LIMIT)
        return {"name": name, "count": len(people), "people": people_out(session, people)}


@app.api_route(
    "/api/people/retrieve-remote",
    methods=["GET", "POST"],
    status_code=202,
    response_model=LookupQueuedResponse,
    tags=["people"],
)
def retrieve_remote(
    background_tasks: BackgroundTasks,
    diasporaHandle: str = Query(..., min_length=3, description="Handle (user@host) to discover."),
    viewer: Viewer = Depends(require_viewer),
):
    """Queue a webfinger lookup for a handle and return immediately."""
    if not looks_like_handle(diasporaHandle):
        raise HTTPException(status_code=400, detail="diasporaHandle must look like user@host")
    with get_session() as session:
        lookup = enqueue_lookup(session, viewer.user_id, diasporaHandle, background_tasks)
        return {"queued": True, "requestId": lookup.id}


@app.get("/api/lookups/{lookup_id}", response_model=RemoteLookupOut, tags=["people"])
def get_lookup(lookup_id: str, viewer: Viewer = Depends(require_viewer)):
    with get_session() as session:
        lookup = session.get(RemoteLookup, lookup_id)
        if lookup is None or lookup.requestedBy != viewer.user_id:
            raise HTTPException(status_code=404, detail="Lookup not found")
        return lookup


@app.post("/api/people/remote", dependencies=[Depends(require_token)], response_model=PersonOut, tags=["admin"])
def import_remote(payload: RemotePersonImport = Body(...)):
    """Create or refresh a remote person and profile."""
    with get_session() as session:
        person = import_remote_person(session, payload)
        return person_out(person, profile_for(session, person), ["tags", "profile"])


@app.get("/api/people/{person_id}", response_model=Union[ProfilePageResponse, PersonOut], tags=["people"])
def show_person(
    person_id: str,
    format_: Literal["html", "mobile", "json"] = Query(default="html", alias="format"),
    includes: str | None = Query(default=None, description="Comma-separated extras for format=json (tags, profile)."),
    maxTime: str | None = Query(default=None, description="Only posts created before this (epoch seconds or ISO)."),
    limit: int = Query(default=DEFAULT_POST_LIMIT, ge=1, le=100),
    viewer: Viewer | None = Depends(current_viewer),
):
    """Profile page: the person plus the posts the viewer may see, newest first.

    `format=json` returns only the hovercard person (`PersonOut`).
    """
    with get_session() as session:
        person = load_person(session, person_id)
        if person is None:
            return _people_index_redirect()
        if person.remote and viewer is None:
            raise HTTPException(status_code=404, detail="Person not found")
        if format_ == "json":
            return person_out(person, profile_for(session, person), parse_includes(includes))
        return profile_page(session, person, viewer, max_time=_parse_max_time(maxTime), limit=limit)


@app.get("/api/people/{person_id}/contacts", response_model=ContactsOfContactResponse, tags=["people"])
def person_contacts(person_id: str, viewer: Viewer = Depends(require_viewer)):
    """People the viewer can see in this person's network (contacts of contact)."""
    with get_session() as session:
        person = load_person(session, person_id)
        if person is None:
            return _people_index_redirect()
        contact = contact_for(session, viewer, person)
        people = contacts_of_contact(session, contact, viewer)
        return {
            "person": person_out(person, profile_for(session, person)),
            "contactsOfContact": people_out(session, people),
            "count": len(people),
        }


@app.get("/tags/{name}", response_model=TagStreamResponse, tags=["tags"])
def tag_stream(
    name: str,
    maxTime: str | None = Query(default=None, description="Only posts created before this (epoch seconds or ISO)."),
    limit: int = Query(default=DEFAULT_POST_LIMIT, ge=1, le=100),
    viewer: Viewer | None = Depends(current_viewer),
):
    """Posts the viewer may see that carry the hashtag, plus people tagged with it."""
    with get_session() as session:
        posts = posts_tagged_with(session, name, viewer, max_time=_parse_max_time(maxTime), limit=limit)
        people = people_tagged_with(session, name, limit=TAG_PEOPLE_LIMIT)
        return {"name": name, "posts": posts_out(session, posts), "people": people_out(session, people)}


@app.post("/api/users", dependencies=[Depends(require_token)], response_model=UserCreatedResponse, tags=["admin"])
def create_user(
    payload: UserCreate = Body(
        ...,
        examples={
            "default": {
                "summary": "Register a local user",
                "value": {"username": "alice", "firstName": "Alice", "lastName": "Smith"},
            }
        },
    ),
):
    """Register a local user with the default aspects and return its session token."""
    with get_session() as session:
        user, person, aspects = register_user(session, payload)
        return {
            "id": user.id,
            "username": user.username,
            "sessionToken": user.sessionToken,
            "person": person_out(person, profile_for(session, person), ["tags"]),
            "aspects": aspects,
        }


@app.get("/api/aspects", response_model=List[AspectOut], tags=["aspects"])
def get_aspects(viewer: Viewer = Depends(require_viewer)):
    with get_session() as session:
        return list_aspects(session, viewer)


@app.post("/api/aspects", response_model=AspectOut, tags=["aspects"])
def post_aspect(payload: AspectCreate, viewer: Viewer = Depends(require_viewer)):
    with get_session() as session:
        return create_aspect(session, viewer, payload.name, payload.contactsVisible)


@app.post("/api/contacts", response_model=ContactOut, tags=["contacts"])
def post_contact(payload: ShareRequest, viewer: Viewer = Depends(require_viewer)):
    """Start sharing with a person by adding them to one of the viewer's aspects."""
    with get_session() as session:
        contact = share_with(session, viewer, payload.personId, payload.aspectId)
        return contact_out(session, contact)


@app.post("/api/posts", response_model=PostOut, tags=["posts"])
def post_status_message(payload: PostCreate, viewer: Viewer = Depends(require_viewer)):
    with get_session() as session:
        post = create_post(session, viewer, payload)
        return post_out(post)


@app.post("/api/posts/{post_id}/comments", response_model=CommentOut, tags=["posts"])
def post_comment(post_id: int, payload: CommentCreate, viewer: Viewer = Depends(require_viewer)):
    with get_session() as session:
        return add_comment(session, viewer, post_id, payload.text)


@app.patch("/api/profile", response_model=ProfileOut, tags=["profile"])
def patch_profile(payload: ProfileUpdate, viewer: Viewer = Depends(require_viewer)):
    with get_session() as session:
        profile = update_profile(session, viewer, payload)
        return profile_out(profile)


async def next_event(subscriber: queue.Queue, timeout: float):
    """Wait up to `timeout` seconds for the next queued event; None on timeout."""
    try:
        return await asyncio.to_thread(subscriber.get, True, timeout)
    except queue.Empty:
        return None


@app.get("/api/stream")
async def stream_events(request: Request, viewer: Viewer = Depends(require_viewer)):
    """Server-sent events for the signed-in viewer (lookups, shares, new posts)."""
    subscriber = event_hub.subscribe(viewer.user_id)
    last_event_id = request.headers.get("last-event-id")
    try:
        last_id = int(last_event_id) if last_event_id else None
    except ValueError:
        last_id = None

    async def event_generator():
        try:
            yield "event: ready\ndata: {}\n\n"
            if last_id is not None:
                oldest = event_hub.oldest_id()
                if oldest is not None and last_id < oldest - 1:
                    yield event_hub.encode(None, {"type": "stream.reset"})
                else:
                    for event_id, payload in event_hub.replay(last_id, viewer.user_id):
                        yield event_hub.encode(event_id, payload)
            while True:
                event = await next_event(subscriber, STREAM_PING_SECONDS)
                if event is None:
                    yield ": ping\n\n"
                    continue
                event_id, payload = event
                yield event_hub.encode(event_id, payload)
        except asyncio.CancelledError:
            pass
        finally:
            event_hub.unsubscribe(subscriber)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
