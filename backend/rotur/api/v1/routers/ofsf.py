# rotur/api/v1/routers/ofsf.py
from fastapi import APIRouter, Depends

from rotur.api.v1.deps import get_current_username, get_ofsf, get_store, ok
from rotur.core.errors import NotFound
from rotur.models import user as U
from rotur.schemas.ofsf import UpdateBatchIn, UUIDsIn
from rotur.services.ofsf import DEFAULT_THRESHOLD, parse_commands

router = APIRouter(prefix="/files", tags=["files"])


def _quota(store, username: str) -> int:
    user = store.users.lookup(username)
    if user is None:
        raise NotFound("User not found")
    return U.max_size(user)


@router.post("/update")
def update(body: UpdateBatchIn, me: str = Depends(get_current_username), store=Depends(get_store), ofsf=Depends(get_ofsf)):
    """
    Apply a batch of ADD / REPLACE / DELETE commands to the caller's files.

    Commands are applied in order. Commands that cannot apply are skipped and
    listed in `skipped`. When the batch leaves the caller over quota the
    response is 413 QUOTA_EXCEEDED with `used_size` and `available_size`;
    the applied commands stay applied.
    """
    commands = parse_commands(body.updates)
    return ok(ofsf.update(me, commands, _quota(store, me)).to_dict())


@router.get("/index")
def index(threshold: int = DEFAULT_THRESHOLD, me: str = Depends(get_current_username), ofsf=Depends(get_ofsf)):
    """Flat list of every entry's fields; data over `threshold` bytes is replaced by false."""
    return ok(ofsf.index(me, max(threshold, 0)))


@router.get("/all")
def dump_all(me: str = Depends(get_current_username), ofsf=Depends(get_ofsf)):
    return ok(ofsf.index(me, 0))


@router.get("/by-uuid/{uuid}")
def by_uuid(uuid: str, me: str = Depends(get_current_username), ofsf=Depends(get_ofsf)):
    return ok(ofsf.get(me, uuid))


@router.post("/by-uuids")
def by_uuids(body: UUIDsIn, me: str = Depends(get_current_username), ofsf=Depends(get_ofsf)):
    return ok(ofsf.get_many(me, body.uuids))


@router.get("/path")
def by_path(path: str, me: str = Depends(get_current_username), ofsf=Depends(get_ofsf)):
    return ok(ofsf.get_by_path(me, path))


@router.get("/path-index")
def path_index(me: str = Depends(get_current_username), ofsf=Depends(get_ofsf)):
    return ok(ofsf.path_index(me))


@router.get("/size")
def size(me: str = Depends(get_current_username), ofsf=Depends(get_ofsf)):
    used = ofsf.used_size(me)
    return ok({"bytes": used, "size": ofsf.size_human(me)})


@router.get("/stats")
def stats(me: str = Depends(get_current_username), store=Depends(get_store), ofsf=Depends(get_ofsf)):
    return ok(ofsf.stats(me, _quota(store, me)))


@router.post("/stat")
def file_stats(body: UUIDsIn, me: str = Depends(get_current_username), ofsf=Depends(get_ofsf)):
    return ok(ofsf.file_stats(me, body.uuids))


@router.delete("")
def delete_all(me: str = Depends(get_current_username), ofsf=Depends(get_ofsf)):
    ofsf.delete_all(me)
    return ok({"username": me})
