# rotur/api/v1/routers/admin.py
from fastapi import APIRouter, Depends

from rotur.api.v1.deps import get_engine, get_keys, get_notifier, get_ofsf, get_store, ok, require_admin
from rotur.schemas.admin import (
    AdminTransferIn,
    AdminUserUpdateIn,
    ItemOwnerIn,
    KeyGrantIn,
    MintIn,
    StandingIn,
    StandingRecoverIn,
    SystemIn,
)
from rotur.services import accounts, items, posts, standing, systems

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])

ADMIN_ID = "admin"


# ==============================================================================
# I. User Management Interface
#     Prefix: /api/v1/admin/users
# ==============================================================================
@router.patch("/users/{username}")
def update_user(username: str, body: AdminUserUpdateIn, store=Depends(get_store)):
    """Set any non-locked key on a user, including "sys." keys."""
    return ok(accounts.update_user(store, username, body.key, body.value, admin=True))


@router.delete("/users/{username}/keys/{key}")
def delete_user_key(username: str, key: str, store=Depends(get_store)):
    accounts.delete_user_key(store, username, key, admin=True)
    return ok({"username": username.lower(), "key": key})


@router.delete("/users/{username}")
def delete_user(username: str, store=Depends(get_store), ofsf=Depends(get_ofsf)):
    accounts.delete_user(store, username, ofsf=ofsf)
    return ok({"username": username.lower()})


@router.post("/users/{username}/ban")
def ban_user(username: str, store=Depends(get_store)):
    """Soft ban: the document keeps only username, email and the banned flag."""
    accounts.ban_user(store, username)
    return ok({"username": username.lower(), "banned": True})


@router.post("/users/{username}/mint")
def mint(username: str, body: MintIn, store=Depends(get_store)):
    return ok(accounts.mint(store, username, body.amount, body.note))


@router.post("/transfer")
def transfer(body: AdminTransferIn, store=Depends(get_store), notifier=Depends(get_notifier)):
    return ok(accounts.transfer(store, body.from_user, body.to, body.amount, body.note, notifier=notifier))


# ==============================================================================
# II. Standing
# ==============================================================================
@router.post("/standing")
def set_standing(body: StandingIn, store=Depends(get_store)):
    return ok(standing.set_standing(store, body.username, body.level, body.reason, admin_id=ADMIN_ID))


@router.post("/standing/recover")
def recover_standing(body: StandingRecoverIn, store=Depends(get_store)):
    """Step a user one level back towards good standing."""
    return ok(standing.recover_standing(store, body.username, body.reason, admin_id=ADMIN_ID))


@router.post("/standing/recover-due")
def recover_due(store=Depends(get_store)):
    return ok({"recovered": standing.recover_due(store)})


@router.get("/standing/{username}")
def standing_history(username: str, store=Depends(get_store)):
    return ok(standing.standing_history(store, username))


# ==============================================================================
# III. Keys and subscriptions
# ==============================================================================
@router.post("/keys/{key_id}/holders")
def grant_key(key_id: str, body: KeyGrantIn, keys=Depends(get_keys)):
    """Add a holder without charging; subscription keys get a first billing date."""
    return ok(keys.admin_add(key_id, body.username))


@router.delete("/keys/{key_id}/holders/{username}")
def remove_key(key_id: str, username: str, keys=Depends(get_keys)):
    keys.admin_remove(key_id, username)
    return ok({"key": key_id, "username": username.lower()})


@router.get("/subscriptions/debug")
def subscriptions_debug(engine=Depends(get_engine)):
    """
    The subscription engine's view of every subscription key.

    Returns:
        dict: Success envelope with one entry per key:
            {key, name, creator, period, frequency, price,
             holders: [{username, price, next_billing, cancel_at, due}]}
    """
    return ok(engine.debug())


@router.post("/subscriptions/sweep")
def subscriptions_sweep(engine=Depends(get_engine)):
    """Run one billing sweep now and return its counts."""
    return ok(engine.sweep().to_dict())


# ==============================================================================
# IV. Content and systems
# ==============================================================================
@router.patch("/items/{name}/owner")
def set_item_owner(name: str, body: ItemOwnerIn, store=Depends(get_store)):
    return ok(items.admin_set_owner(store, name, body.username))


@router.delete("/posts/{post_id}")
def delete_post(post_id: str, store=Depends(get_store), notifier=Depends(get_notifier)):
    posts.delete_post(store, ADMIN_ID, post_id, admin=True, notifier=notifier)
    return ok({"id": post_id})


@router.get("/systems")
def list_systems(store=Depends(get_store)):
    return ok(systems.list_systems(store))


@router.put("/systems/{name}")
def set_system(name: str, body: SystemIn, store=Depends(get_store)):
    return ok(systems.set_system(store, name, body.info))


@router.delete("/systems/{name}")
def delete_system(name: str, store=Depends(get_store)):
    systems.delete_system(store, name)
    return ok({"name": name})
