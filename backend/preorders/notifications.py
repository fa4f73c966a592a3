# Overview: Request-scoped notification feed returned alongside JSON responses.

from __future__ import annotations

import logging

from flask import g, has_request_context

logger = logging.getLogger(__name__)


LEVEL_SUCCESS = "success"
LEVEL_INFO = "info"
LEVEL_WARNING = "warning"
LEVEL_ERROR = "error"

_LOG_LEVELS = {
    LEVEL_SUCCESS: logging.INFO,
    LEVEL_INFO: logging.INFO,
    LEVEL_WARNING: logging.WARNING,
    LEVEL_ERROR: logging.ERROR,
}


def notify(level: str, message: str) -> None:
    """
    Log a user-facing message and queue it for the current response.

    Outside a request (CLI, tests calling services directly) the message is
    only logged.
    """
    if level not in _LOG_LEVELS:
        raise ValueError(f"Unknown notification level: {level!r}")
    logger.log(_LOG_LEVELS[level], "[%s] %s", level, message)
    if has_request_context():
        g.setdefault("notifications", []).append({"level": level, "message": message})


def drain() -> list[dict]:
    """Notifications queued during this request, oldest first."""
    if not has_request_context():
        return []
    return list(g.pop("notifications", []))


def attach(body: dict) -> dict:
    """Add the queued notifications to a JSON response body."""
    body["notifications"] = drain()
    return body
