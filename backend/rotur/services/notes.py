# rotur/services/notes.py
"""Private notes a user keeps about other accounts, keyed by the other account's `sys.id`."""
from rotur.core.errors import BadInput, NotFound

FIELD = "sys.notes"
MAX_NOTE = 300


def _notes(user: dict) -> dict:
    notes = user.get(FIELD)
    return dict(notes) if isinstance(notes, dict) else {}


def set_note(store, username: str, target: str, note: str) -> dict:
    target = (target or "").lower()
    if not target:
        raise BadInput("Username is required")
    if not note:
        raise BadInput("Note content is required")
    if len(note) > MAX_NOTE:
        raise BadInput("Note content is too long")
    with store.users.write() as users:
        user = users.get(username.lower())
        other = users.get(target)
        if user is None or other is None:
            raise NotFound("User not found")
        notes = _notes(user)
        notes[str(other.get("sys.id"))] = note
        user[FIELD] = notes
    return {"username": target, "note": note}


def remove_note(store, username: str, target: str) -> None:
    target = (target or "").lower()
    if not target:
        raise BadInput("Username is required")
    with store.users.write() as users:
        user = users.get(username.lower())
        other = users.get(target)
        if user is None or other is None:
            raise NotFound("User not found")
        notes = _notes(user)
        notes.pop(str(other.get("sys.id")), None)
        user[FIELD] = notes


def notes_of(store, username: str) -> dict:
    """Notes by the noted account's current username; notes about deleted accounts are left out."""
    user = store.users.lookup(username)
    if user is None:
        raise NotFound("User not found")
    out = {}
    for user_id, note in _notes(user).items():
        name = store.users.username_for_id(user_id)
        if name is not None:
            out[name] = note
    return out
