# rotur/api/v1/routers/link.py
from fastapi import APIRouter, Depends, Query

from rotur.api.v1.deps import get_current_username, get_links, get_store, ok
from rotur.core.errors import NotFound

router = APIRouter(prefix="/link", tags=["link"])


@router.get("/code")
def new_code(links=Depends(get_links)):
    """Issue a code for a device that is not logged in yet."""
    return ok({"code": links.generate()})


@router.post("/code")
def link_code(
    code: str = Query(...),
    me: str = Depends(get_current_username),
    store=Depends(get_store),
    links=Depends(get_links),
):
    """Attach the caller's key to a code shown on another device."""
    user = store.users.lookup(me)
    if user is None:
        raise NotFound("User not found")
    links.link(code, user["key"])
    return ok({"message": "Linked Successfully"})


@router.get("/status")
def link_status(code: str = Query(...), links=Depends(get_links)):
    if not links.is_linked(code):
        raise NotFound("Code is not linked")
    return ok({"status": "linked"})


@router.get("/user")
def linked_user(code: str = Query(...), links=Depends(get_links)):
    """Hand the linked key to the waiting device, once."""
    return ok({"linked": True, "token": links.claim(code)})
