# rotur/api/v1/routers/status.py
from fastapi import APIRouter, Depends

from rotur.api.v1.deps import get_current_username, get_notifier, get_store, ok
from rotur.schemas.profile import StatusIn
from rotur.services import statuses

router = APIRouter(prefix="/status", tags=["status"])


@router.put("/me")
def update_status(
    body: StatusIn,
    me: str = Depends(get_current_username),
    store=Depends(get_store),
    notifier=Depends(get_notifier),
):
    """
    Set the caller's status for the next 24 hours.

    Error codes:
        - BAD_INPUT: Neither or both of content and activity, over-long fields, bad image URL
    """
    result = statuses.update_status(
        store, me,
        content=body.content,
        activity_name=body.activity_name,
        activity_description=body.activity_description,
        activity_image=body.activity_image,
        notifier=notifier,
    )
    return ok(result)


@router.delete("/me")
def clear_status(me: str = Depends(get_current_username), store=Depends(get_store), notifier=Depends(get_notifier)):
    statuses.clear_status(store, me, notifier=notifier)
    return ok({"message": "status cleared"})


@router.get("/{username}")
def get_status(username: str, store=Depends(get_store)):
    return ok(statuses.get_status(store, username))
