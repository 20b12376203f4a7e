# rotur/api/v1/routers/posts.py
from fastapi import APIRouter, Depends, Query

from rotur.api.v1.deps import get_current_username, get_keys, get_notifier, get_settings, get_store, ok
from rotur.schemas.posts import PostIn, RateIn, ReplyIn
from rotur.services import posts

router = APIRouter(prefix="/posts", tags=["posts"])


# ==============================================================================
# I. Feeds and search
#     (fixed paths come before /{post_id})
# ==============================================================================
@router.get("/feed")
def feed(offset: int = Query(default=0, ge=0), limit: int = Query(default=100), store=Depends(get_store)):
    """Public posts, newest first. `limit` is capped at 100."""
    return ok(posts.feed(store, offset, limit))


@router.get("/following")
def following_feed(limit: int = 100, me: str = Depends(get_current_username), store=Depends(get_store)):
    return ok(posts.following_feed(store, me, limit))


@router.get("/top")
def top(time_period: int = 24, limit: int = 50, store=Depends(get_store)):
    """Most liked public posts from the last `time_period` hours."""
    return ok(posts.top_posts(store, time_period, limit))


@router.get("/search")
def search(q: str = "", limit: int = 20, store=Depends(get_store)):
    return ok(posts.search_posts(store, q, limit))


@router.get("/user/{username}")
def user_posts(username: str, limit: int = 100, store=Depends(get_store)):
    return ok(posts.user_posts(store, username, limit))


# ==============================================================================
# II. Writes
# ==============================================================================
@router.post("")
def create_post(
    body: PostIn,
    me: str = Depends(get_current_username),
    store=Depends(get_store),
    keys=Depends(get_keys),
    notifier=Depends(get_notifier),
    settings=Depends(get_settings),
):
    """
    Publish a post.

    Holders of the premium post key may write up to 600 characters instead of 300.

    Error codes:
        - BAD_INPUT: Empty or over-long content, invalid attachment, unknown os
        - FORBIDDEN: Account standing does not allow posting
    """
    premium = bool(settings.premium_post_key) and keys.owns(me, settings.premium_post_key)
    post = posts.create_post(
        store, me, body.content,
        attachment=body.attachment,
        os_name=body.os,
        profile_only=body.profile_only,
        premium=premium,
        notifier=notifier,
    )
    return ok(post)


@router.get("/{post_id}")
def get_post(post_id: str, store=Depends(get_store)):
    return ok(posts.get_post(store, post_id))


@router.post("/{post_id}/reply")
def reply(
    post_id: str,
    body: ReplyIn,
    me: str = Depends(get_current_username),
    store=Depends(get_store),
    notifier=Depends(get_notifier),
):
    return ok(posts.reply_to_post(store, me, post_id, body.content, notifier=notifier))


@router.post("/{post_id}/rate")
def rate(
    post_id: str,
    body: RateIn,
    me: str = Depends(get_current_username),
    store=Depends(get_store),
    notifier=Depends(get_notifier),
):
    likes = posts.rate_post(store, me, post_id, body.rating, notifier=notifier)
    return ok({"likes": likes, "count": len(likes)})


@router.post("/{post_id}/repost")
def repost(post_id: str, me: str = Depends(get_current_username), store=Depends(get_store)):
    return ok(posts.repost(store, me, post_id))


@router.post("/{post_id}/pin")
def pin(post_id: str, me: str = Depends(get_current_username), store=Depends(get_store), notifier=Depends(get_notifier)):
    posts.pin_post(store, me, post_id, notifier=notifier)
    return ok({"id": post_id, "pinned": True})


@router.delete("/{post_id}/pin")
def unpin(post_id: str, me: str = Depends(get_current_username), store=Depends(get_store), notifier=Depends(get_notifier)):
    posts.unpin_post(store, me, post_id, notifier=notifier)
    return ok({"id": post_id, "pinned": False})


@router.delete("/{post_id}")
def delete_post(post_id: str, me: str = Depends(get_current_username), store=Depends(get_store), notifier=Depends(get_notifier)):
    posts.delete_post(store, me, post_id, notifier=notifier)
    return ok({"id": post_id})
