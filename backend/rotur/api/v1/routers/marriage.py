# rotur/api/v1/routers/marriage.py
from fastapi import APIRouter, Depends

from rotur.api.v1.deps import get_current_username, get_store, ok
from rotur.services import marriage

router = APIRouter(prefix="/marriage", tags=["marriage"])


@router.get("/status")
def status(me: str = Depends(get_current_username), store=Depends(get_store)):
    """The caller's marriage record; single accounts get an empty "single" record."""
    return ok(marriage.get_status(store, me))


@router.post("/propose/{username}")
def propose(username: str, me: str = Depends(get_current_username), store=Depends(get_store)):
    """
    Propose to another user.

    Error codes:
        - BAD_INPUT: Proposing to yourself
        - NOT_FOUND: Target does not exist
        - PRECONDITION_FAILED: Either side is married or has an open proposal, or you are blocked
    """
    return ok(marriage.propose(store, me, username))


@router.post("/accept")
def accept(me: str = Depends(get_current_username), store=Depends(get_store)):
    return ok(marriage.accept(store, me))


@router.post("/reject")
def reject(me: str = Depends(get_current_username), store=Depends(get_store)):
    return ok(marriage.reject(store, me))


@router.post("/cancel")
def cancel(me: str = Depends(get_current_username), store=Depends(get_store)):
    return ok(marriage.cancel(store, me))


@router.post("/divorce")
def divorce(me: str = Depends(get_current_username), store=Depends(get_store)):
    """Error codes: NOT_MARRIED when the caller has no accepted marriage."""
    return ok(marriage.divorce(store, me))
