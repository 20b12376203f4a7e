# rotur/api/v1/routers/social.py
from fastapi import APIRouter, Depends, Query

from rotur.api.v1.deps import get_current_username, get_notifier, get_store, ok
from rotur.services import events, social

router = APIRouter(prefix="/social", tags=["social"])


# ==============================================================================
# I. Followers
# ==============================================================================
@router.post("/follow/{username}")
def follow(username: str, me: str = Depends(get_current_username), store=Depends(get_store), notifier=Depends(get_notifier)):
    return ok(social.follow(store, me, username, notifier=notifier))


@router.delete("/follow/{username}")
def unfollow(username: str, me: str = Depends(get_current_username), store=Depends(get_store)):
    return ok(social.unfollow(store, me, username))


@router.get("/followers/{username}")
def followers(username: str, store=Depends(get_store)):
    names = social.followers_of(store, username)
    return ok({"followers": names, "count": len(names)})


@router.get("/following/{username}")
def following(username: str, store=Depends(get_store)):
    names = social.following_of(store, username)
    return ok({"following": names, "count": len(names)})


# ==============================================================================
# II. Friends
# ==============================================================================
@router.get("/friends")
def my_friends(me: str = Depends(get_current_username), store=Depends(get_store)):
    return ok(social.friends_of(store, me))


@router.post("/friends/request/{username}")
def send_request(username: str, me: str = Depends(get_current_username), store=Depends(get_store)):
    social.send_friend_request(store, me, username)
    return ok({"message": "Request Sent"})


@router.post("/friends/accept/{username}")
def accept_request(username: str, me: str = Depends(get_current_username), store=Depends(get_store)):
    social.accept_friend_request(store, me, username)
    return ok({"message": "Friend Added"})


@router.post("/friends/reject/{username}")
def reject_request(username: str, me: str = Depends(get_current_username), store=Depends(get_store)):
    social.reject_friend_request(store, me, username)
    return ok({"message": "Request Rejected"})


@router.delete("/friends/{username}")
def remove_friend(username: str, me: str = Depends(get_current_username), store=Depends(get_store)):
    social.remove_friend(store, me, username)
    return ok({"message": "Friend Removed"})


# ==============================================================================
# III. Blocking and notifications
# ==============================================================================
@router.get("/blocked")
def blocked(me: str = Depends(get_current_username), store=Depends(get_store)):
    return ok(social.blocked_of(store, me))


@router.post("/block/{username}")
def block(username: str, me: str = Depends(get_current_username), store=Depends(get_store)):
    return ok(social.block(store, me, username))


@router.delete("/block/{username}")
def unblock(username: str, me: str = Depends(get_current_username), store=Depends(get_store)):
    return ok(social.unblock(store, me, username))


@router.get("/notifications")
def notifications(
    after: int = Query(default=1, description="Look back this many days"),
    me: str = Depends(get_current_username),
    store=Depends(get_store),
):
    return ok(events.list_notifications(store, me, after_days=after))
