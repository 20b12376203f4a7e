# rotur/api/v1/routers/keys.py
from fastapi import APIRouter, Depends

from rotur.api.v1.deps import get_current_username, get_keys, ok
from rotur.schemas.keys import KeyIn, KeyRevokeIn, KeyUpdateIn

router = APIRouter(prefix="/keys", tags=["keys"])


@router.post("")
def create_key(body: KeyIn, me: str = Depends(get_current_username), keys=Depends(get_keys)):
    """
    Create an access key. Subscription keys bill holders every frequency x period.

    Error codes:
        - BAD_INPUT: Missing name, bad price, frequency or period
        - KEY_NAME_EXISTS: Another key uses this name
        - KEY_LIMIT: The caller's tier allows no more keys
    """
    key = keys.create(
        me, body.name,
        price=body.price,
        subscription=body.subscription,
        frequency=body.frequency,
        period=body.period,
        description=body.description,
    )
    return ok(key)


@router.get("/mine")
def my_keys(me: str = Depends(get_current_username), keys=Depends(get_keys)):
    """Keys the caller created (full view) or holds (holder view)."""
    return ok(keys.mine(me))


@router.get("/{key_id}")
def get_key(key_id: str, keys=Depends(get_keys)):
    return ok(keys.get(key_id))


@router.get("/{key_id}/check/{username}")
def check(key_id: str, username: str, keys=Depends(get_keys)):
    """Whether `username` holds the key, answered from the ownership cache."""
    return ok(keys.check(key_id, username))


@router.post("/{key_id}/buy")
def buy(key_id: str, me: str = Depends(get_current_username), keys=Depends(get_keys)):
    return ok(keys.buy(me, key_id))


@router.post("/{key_id}/cancel")
def cancel(key_id: str, me: str = Depends(get_current_username), keys=Depends(get_keys)):
    """Stop renewing a subscription; access lasts until the paid period ends."""
    return ok(keys.cancel(me, key_id))


@router.post("/{key_id}/revoke")
def revoke(key_id: str, body: KeyRevokeIn, me: str = Depends(get_current_username), keys=Depends(get_keys)):
    keys.revoke(me, key_id, body.username)
    return ok({"key": key_id, "username": body.username.lower()})


@router.patch("/{key_id}")
def update_key(key_id: str, body: KeyUpdateIn, me: str = Depends(get_current_username), keys=Depends(get_keys)):
    return ok(keys.update(me, key_id, body.field, body.value))


@router.delete("/{key_id}")
def delete_key(key_id: str, me: str = Depends(get_current_username), keys=Depends(get_keys)):
    keys.delete(me, key_id)
    return ok({"key": key_id})
