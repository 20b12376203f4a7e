# rotur/services/events.py
"""Per-user notification history (follow, reply, key loss, ...)."""
from rotur.core.errors import BadInput
from rotur.core.security import generate_short_token
from rotur.core.timeutil import now_ms

MAX_EVENTS_PER_USER = 100
DAY_MS = 24 * 60 * 60 * 1000


def add_user_event(store, username: str, event_type: str, data: dict, now: int | None = None) -> dict:
    """Append an event to `username`'s history, keeping the newest 100."""
    username = username.lower()
    event = {
        "type": event_type,
        "data": data,
        "timestamp": now if now is not None else now_ms(),
        "id": generate_short_token(),
    }
    with store.events_history.write() as history:
        events = history.get(username)
        if not isinstance(events, list):
            events = []
        events.append(event)
        history[username] = events[-MAX_EVENTS_PER_USER:]
    return event


def list_notifications(store, username: str, after_days: int = 1, now: int | None = None) -> list[dict]:
    """Events from the last `after_days` days, newest first, with event data flattened in."""
    if after_days < 1:
        raise BadInput("Invalid time period")
    cutoff = (now if now is not None else now_ms()) - after_days * DAY_MS
    events = store.events_history.lookup(username.lower()) or []
    out = []
    for event in events:
        if event.get("timestamp", 0) < cutoff:
            continue
        item = {"type": event.get("type"), "id": event.get("id"), "timestamp": event.get("timestamp")}
        item.update(event.get("data") or {})
        out.append(item)
    out.sort(key=lambda e: e["timestamp"], reverse=True)
    return out
