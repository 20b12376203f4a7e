# rotur/services/statuses.py
"""
Short-lived profile statuses.

A status is either a simple sentence or an activity (name, optional
description and image). It lives for 24 hours; expired statuses are removed
lazily on read and by a periodic cleanup.
"""
import logging

from rotur.core.errors import BadInput, NotFound
from rotur.core.timeutil import now_ms

logger = logging.getLogger("uvicorn.error")

STATUS_TTL_MS = 24 * 3600 * 1000
MAX_CONTENT = 250
MAX_ACTIVITY_NAME = 100
MAX_ACTIVITY_DESCRIPTION = 500
MAX_IMAGE_URL = 500


def _clean(value: str | None) -> str:
    return (value or "").strip()


def _announce(notifier, username: str, status) -> None:
    if notifier is not None:
        notifier.broadcast("user_account_update", {"username": username, "key": "status", "value": status})


def update_status(
    store,
    username: str,
    content: str | None = None,
    activity_name: str | None = None,
    activity_description: str | None = None,
    activity_image: str | None = None,
    notifier=None,
    now: int | None = None,
) -> dict:
    """
    Replace the caller's status.

    Raises:
        BadInput: Neither or both of content and activity given, over-long fields, bad image URL
        NotFound: The user does not exist
    """
    username = username.lower()
    content = _clean(content)
    name = _clean(activity_name)
    description = _clean(activity_description)
    image = _clean(activity_image)

    if not content and not name:
        raise BadInput("Either content or activity_name is required")
    if content and name:
        raise BadInput("Cannot set both simple content and activity simultaneously")
    if len(content) > MAX_CONTENT:
        raise BadInput(f"Content exceeds {MAX_CONTENT} characters")
    if len(name) > MAX_ACTIVITY_NAME:
        raise BadInput(f"activity_name exceeds {MAX_ACTIVITY_NAME} characters")
    if len(description) > MAX_ACTIVITY_DESCRIPTION:
        raise BadInput(f"activity_description exceeds {MAX_ACTIVITY_DESCRIPTION} characters")
    if image:
        if not image.startswith(("http://", "https://")):
            raise BadInput("activity_image must be a valid URL")
        if len(image) > MAX_IMAGE_URL:
            raise BadInput(f"activity_image exceeds {MAX_IMAGE_URL} characters")
    if not store.users.exists(username):
        raise NotFound("User not found")

    now = now if now is not None else now_ms()
    status = {"type": "simple", "created": now, "expires": now + STATUS_TTL_MS}
    if content:
        status["content"] = content
    else:
        activity = {"name": name}
        if description:
            activity["description"] = description
        if image:
            activity["image"] = image
        status["type"] = "activity"
        status["activity"] = activity

    with store.statuses.write() as statuses:
        statuses[username] = status
    _announce(notifier, username, status)
    return {"status": dict(status), "time_remaining_ms": STATUS_TTL_MS}


def clear_status(store, username: str, notifier=None) -> None:
    username = username.lower()
    with store.statuses.write() as statuses:
        statuses.pop(username, None)
    _announce(notifier, username, None)


def get_status(store, username: str, now: int | None = None) -> dict:
    """The user's live status with its remaining lifetime; an expired one is dropped."""
    username = (username or "").lower()
    if not username:
        raise BadInput("name parameter missing")
    now = now if now is not None else now_ms()
    status = store.statuses.lookup(username)
    if not isinstance(status, dict):
        raise NotFound("No status")
    if now >= int(status.get("expires", 0)):
        with store.statuses.write() as statuses:
            if statuses.get(username, {}).get("expires") == status.get("expires"):
                statuses.pop(username, None)
        raise NotFound("No status")
    return {"username": username, "status": status, "time_remaining_ms": int(status["expires"]) - now}


def cleanup_expired(store, notifier=None, now: int | None = None) -> int:
    """Remove every expired status; returns how many were removed."""
    now = now if now is not None else now_ms()
    with store.statuses.write() as statuses:
        expired = [
            name for name, status in statuses.items()
            if not isinstance(status, dict) or now >= int(status.get("expires", 0))
        ]
        for name in expired:
            del statuses[name]
    for name in expired:
        _announce(notifier, name, None)
    if expired:
        logger.info("[statuses] removed %d expired statuses", len(expired))
    return len(expired)
