# rotur/api/v1/routers/users.py
from fastapi import APIRouter, Depends

from rotur.api.v1.deps import (
    get_current_username,
    get_notifier,
    get_ofsf,
    get_optional_username,
    get_store,
    ok,
)
from rotur.schemas.accounts import TransferIn, UpdateUserIn
from rotur.schemas.profile import NoteIn
from rotur.services import accounts, notes

router = APIRouter(prefix="/users", tags=["users"])


# ==============================================================================
# I. The caller's own account
#     (declared before /{username} so "me" is never taken for a username)
# ==============================================================================
@router.get("/me")
def get_me(me: str = Depends(get_current_username), store=Depends(get_store)):
    return ok(accounts.get_user(store, me, viewer=me))


@router.patch("/me")
def update_me(body: UpdateUserIn, me: str = Depends(get_current_username), store=Depends(get_store)):
    """
    Set one key on the caller's user document.

    Error codes:
        - FORBIDDEN: Locked key or "sys." key
        - BAD_INPUT: Key too long, value too long, or document over the size limit
    """
    return ok(accounts.update_user(store, me, body.key, body.value))


@router.delete("/me/keys/{key}")
def delete_my_key(key: str, me: str = Depends(get_current_username), store=Depends(get_store)):
    accounts.delete_user_key(store, me, key)
    return ok({"key": key})


@router.delete("/me")
def delete_me(me: str = Depends(get_current_username), store=Depends(get_store), ofsf=Depends(get_ofsf)):
    """Delete the caller's account, their references in other accounts and their files."""
    accounts.delete_user(store, me, ofsf=ofsf)
    return ok({"username": me})


@router.post("/me/transfer")
def transfer(
    body: TransferIn,
    me: str = Depends(get_current_username),
    store=Depends(get_store),
    notifier=Depends(get_notifier),
):
    """
    Send credits to another user.

    Error codes:
        - BAD_INPUT: Amount below 0.01 or sending to yourself
        - NOT_FOUND: Recipient does not exist
        - INSUFFICIENT_FUNDS: Balance does not cover the amount
    """
    return ok(accounts.transfer(store, me, body.to, body.amount, body.note, notifier=notifier))


@router.post("/me/claim-daily")
def claim_daily(me: str = Depends(get_current_username), store=Depends(get_store)):
    return ok(accounts.claim_daily(store, me))


@router.get("/me/notes")
def my_notes(me: str = Depends(get_current_username), store=Depends(get_store)):
    """The caller's private notes about other users, by username."""
    return ok(notes.notes_of(store, me))


@router.put("/me/notes/{username}")
def set_note(username: str, body: NoteIn, me: str = Depends(get_current_username), store=Depends(get_store)):
    return ok(notes.set_note(store, me, username, body.note))


@router.delete("/me/notes/{username}")
def delete_note(username: str, me: str = Depends(get_current_username), store=Depends(get_store)):
    notes.remove_note(store, me, username)
    return ok({"username": username.lower()})


# ==============================================================================
# II. Other users
# ==============================================================================
@router.get("/{username}")
def get_user(username: str, viewer: str | None = Depends(get_optional_username), store=Depends(get_store)):
    """Public view of a user; the owner of the account gets the private view."""
    return ok(accounts.get_user(store, username, viewer=viewer))
