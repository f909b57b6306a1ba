"""Logging helpers for the podpeople service."""

from __future__ import annotations

import logging
import os
from typing import Any

LOGGER_NAME = "podpeople"

_SENSITIVE_KEYWORDS = ("token", "secret", "authorization", "password")
_MAX_STRING_LENGTH = 256

_configured = False


def configure_logging(level: str | None = None) -> None:
    """Attach a stream handler to the podpeople logger once."""
    global _configured
    if _configured:
        return
    resolved = (level or os.getenv("PODPEOPLE_LOG_LEVEL", "INFO")).strip().upper() or "INFO"
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, resolved, logging.INFO))
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        logger.addHandler(handler)
    logger.propagate = False
    _configured = True


def get_logger(name: str | None = None) -> logging.Logger:
    if not name:
        return logging.getLogger(LOGGER_NAME)
    return logging.getLogger(f"{LOGGER_NAME}.{name}")


def _scrub(key: str, value: Any) -> str:
    lowered = key.lower()
    if any(word in lowered for word in _SENSITIVE_KEYWORDS):
        return "[redacted]"
    text = str(value)
    if len(text) > _MAX_STRING_LENGTH:
        return text[: _MAX_STRING_LENGTH - 3] + "..."
    return text


def format_fields(**fields: Any) -> str:
    parts = []
    for key in sorted(fields):
        value = fields[key]
        if value is None:
            continue
        parts.append(f"{key}={_scrub(key, value)}")
    return " ".join(parts)


def log_event(logger: logging.Logger, event: str, level: int = logging.INFO, **fields: Any) -> None:
    """Emit `event key=value ...` with sensitive fields redacted."""
    if not logger.isEnabledFor(level):
        return
    suffix = format_fields(**fields)
    logger.log(level, f"{event} {suffix}" if suffix else event)
