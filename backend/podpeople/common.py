from __future__ import annotations

import os
import re
from datetime import datetime, timezone
from uuid import uuid4

POD_HOST = os.getenv("PODPEOPLE_POD_HOST", "pod.localhost").strip().lower() or "pod.localhost"
POD_SCHEME = os.getenv("PODPEOPLE_POD_SCHEME", "https").strip().lower() or "https"

_TAG_RE = re.compile(r"(?:^|\s)#([\w-]+)", re.UNICODE)
HANDLE_RE = re.compile(r"^@?[\w.+-]+@[\w.-]+$")


def now_iso() -> str:
    # Fixed timespec keeps the strings lexicographically sortable.
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def normalize_iso(value: str | None) -> str | None:
    """Normalize a timestamp to canonical UTC ISO (milliseconds + Z); None when unparseable."""
    if not value:
        return None
    raw = str(value).strip()
    if not raw:
        return None
    try:
        candidate = raw.replace("Z", "+00:00") if raw.endswith("Z") else raw
        dt = datetime.fromisoformat(candidate)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        else:
            dt = dt.astimezone(timezone.utc)
        return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    except ValueError:
        return None


def iso_from_epoch(seconds: float) -> str:
    dt = datetime.fromtimestamp(seconds, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def create_id(prefix: str) -> str:
    return f"{prefix}-{uuid4()}"


def create_guid() -> str:
    return uuid4().hex


def pod_url() -> str:
    return f"{POD_SCHEME}://{POD_HOST}/"


def local_handle(username: str) -> str:
    return f"{username}@{POD_HOST}".lower()


def normalize_handle(value: str | None) -> str:
    return (value or "").strip().lstrip("@").lower()


def looks_like_handle(value: str | None) -> bool:
    return bool(HANDLE_RE.match((value or "").strip()))


def extract_tags(text: str | None) -> list[str]:
    """Return unique lowercase hashtags in order of first appearance."""
    seen: set[str] = set()
    tags: list[str] = []
    for match in _TAG_RE.finditer(text or ""):
        name = match.group(1).lower()
        if name and name not in seen:
            seen.add(name)
            tags.append(name)
    return tags


def normalize_tag(name: str | None) -> str:
    return (name or "").strip().lstrip("#").lower()
