# rotur/services/posts.py
"""Posts, replies, likes, reposts and the read-side feeds."""
import copy
import logging

from rotur.core.errors import BadInput, Forbidden, NotFound, PreconditionFailed
from rotur.core.security import generate_token
from rotur.core.timeutil import now_ms
from rotur.models import post as P
from rotur.models import user as U
from rotur.services.events import add_user_event

logger = logging.getLogger("uvicorn.error")

FEED_LIMIT = 100
SEARCH_LIMIT = 50
HOUR_MS = 3600 * 1000


def _find(posts: list, store, post_id: str, message: str = "Post not found") -> dict:
    if not post_id:
        raise BadInput("Post ID is required")
    post = store.posts.find(posts, post_id)
    if post is None:
        raise NotFound(message)
    return post


def _author(store, username: str, action: str) -> dict:
    user = store.users.lookup(username)
    if user is None:
        raise NotFound("User not found")
    if not U.can(user, action):
        raise Forbidden(f"Your account standing does not allow you to {action}")
    return user


def _clamp(value, default: int, maximum: int) -> int:
    try:
        value = int(value)
    except (TypeError, ValueError):
        return default
    if value <= 0:
        return default
    return min(value, maximum)


# ==============================================================================
# I. Writes
# ==============================================================================
def create_post(
    store,
    username: str,
    content: str,
    attachment: str | None = None,
    os_name: str | None = None,
    profile_only: bool = False,
    premium: bool = False,
    notifier=None,
    now: int | None = None,
) -> dict:
    """
    Publish a post.

    Args:
        premium: Author holds the premium post key (raises the length limit)
        os_name: Optional system name; must be registered in the systems collection

    Raises:
        BadInput: Empty or over-long content, bad attachment, unknown os
        Forbidden: Author's standing forbids posting
    """
    username = username.lower()
    _author(store, username, "post")
    if not content:
        raise BadInput("Content is required")
    limit = P.MAX_CONTENT_PREMIUM if premium else P.MAX_CONTENT
    if len(content) > limit:
        raise BadInput(f"Content exceeds {limit} character limit")
    if attachment:
        if len(attachment) > P.MAX_ATTACHMENT:
            raise BadInput(f"Attachment URL exceeds {P.MAX_ATTACHMENT} character limit")
        if not attachment.startswith(("http://", "https://")):
            raise BadInput("Attachment must be a valid URL")
    if os_name:
        with store.systems.read() as systems:
            if os_name not in systems:
                raise BadInput("OS is invalid")

    post = {
        "id": generate_token(),
        "content": content,
        "user": username,
        "timestamp": now if now is not None else now_ms(),
        "attachment": attachment or None,
        "profile_only": bool(profile_only),
        "replies": [],
        "likes": [],
        "pinned": False,
        "is_repost": False,
    }
    if os_name:
        post["os"] = os_name
    with store.posts.write() as posts:
        posts.append(post)
    if notifier is not None and not post["profile_only"]:
        notifier.broadcast("new_post", post)
    return P.to_net(post)


def reply_to_post(store, username: str, post_id: str, content: str, notifier=None, now: int | None = None) -> dict:
    username = username.lower()
    _author(store, username, "reply")
    if not content:
        raise BadInput("Content is required")
    if len(content) > P.MAX_REPLY:
        raise BadInput(f"Content exceeds {P.MAX_REPLY} character limit")
    reply = {
        "id": generate_token(),
        "content": content,
        "user": username,
        "timestamp": now if now is not None else now_ms(),
    }
    with store.posts.write() as posts:
        post = _find(posts, store, post_id)
        post.setdefault("replies", []).append(reply)
        author = str(post.get("user", ""))
        replies = copy.deepcopy(post["replies"])

    if notifier is not None:
        notifier.broadcast("update_post", {"id": post_id, "key": "replies", "data": replies})
    if store.users.exists(author):
        add_user_event(store, author, "reply", {
            "post_id": post_id,
            "reply_id": reply["id"],
            "user": username,
            "content": content,
        })
    return reply


def rate_post(store, username: str, post_id: str, rating, notifier=None) -> list[str]:
    """Like (`1`) or unlike (`0`) a post; returns the resulting likers."""
    try:
        rating = int(rating)
    except (TypeError, ValueError):
        rating = -1
    if rating not in (0, 1):
        raise BadInput("Rating must be 1 (like) or 0 (unlike)")
    username = username.lower()
    with store.posts.write() as posts:
        post = _find(posts, store, post_id)
        likes = [str(u).lower() for u in post.get("likes") or []]
        if rating == 1:
            if username not in likes:
                likes.append(username)
        else:
            likes = [u for u in likes if u != username]
        post["likes"] = likes
        public = P.is_public(post)
    if notifier is not None and public:
        notifier.broadcast("update_post", {"id": post_id, "key": "likes", "data": likes})
    return list(likes)


def repost(store, username: str, post_id: str, now: int | None = None) -> dict:
    """
    Repost a public original. The repost itself is profile-only and embeds a
    snapshot of the original, so reposts of reposts cannot exist.
    """
    username = username.lower()
    _author(store, username, "repost")
    with store.posts.write() as posts:
        original = _find(posts, store, post_id, "Original post not found")
        # Reposts are profile-only themselves, so this check comes first
        if original.get("is_repost"):
            raise PreconditionFailed("Cannot repost a repost")
        if original.get("profile_only"):
            raise PreconditionFailed("Cannot repost a profile-only post")
        embedded = {
            field: original.get(field)
            for field in ("id", "content", "user", "timestamp", "attachment")
        }
        if original.get("os"):
            embedded["os"] = original["os"]
        post = {
            "id": generate_token(),
            "content": "",
            "user": username,
            "timestamp": now if now is not None else now_ms(),
            "attachment": None,
            "profile_only": True,
            "replies": [],
            "likes": [],
            "pinned": False,
            "is_repost": True,
            "original_post": embedded,
        }
        posts.append(post)
    author = str(embedded.get("user", ""))
    if store.users.exists(author):
        add_user_event(store, author, "repost", {
            "repost_id": post["id"],
            "user": username,
            "original_post_id": embedded["id"],
        })
    return P.to_net(post)


def _set_pinned(store, username: str, post_id: str, pinned: bool, notifier=None) -> None:
    with store.posts.write() as posts:
        post = _find(posts, store, post_id)
        if str(post.get("user", "")).lower() != username.lower():
            verb = "pin" if pinned else "unpin"
            raise Forbidden(f"You can only {verb} your own posts")
        post["pinned"] = pinned
        public = P.is_public(post)
    if notifier is not None and public:
        notifier.broadcast("update_post", {"id": post_id, "key": "pinned", "data": pinned})


def pin_post(store, username: str, post_id: str, notifier=None) -> None:
    _set_pinned(store, username, post_id, True, notifier)


def unpin_post(store, username: str, post_id: str, notifier=None) -> None:
    _set_pinned(store, username, post_id, False, notifier)


def delete_post(store, username: str, post_id: str, admin: bool = False, notifier=None) -> None:
    with store.posts.write() as posts:
        post = _find(posts, store, post_id)
        if not admin and str(post.get("user", "")).lower() != username.lower():
            raise Forbidden("You cannot delete this post")
        posts.remove(post)
        public = P.is_public(post)
    if notifier is not None and public:
        notifier.broadcast("delete_post", {"id": post_id})
    logger.info("[posts] %s deleted post %s", username, post_id)


# ==============================================================================
# II. Reads
# ==============================================================================
def get_post(store, post_id: str) -> dict:
    post = store.posts.lookup(post_id)
    if post is None:
        raise NotFound("Post not found")
    return P.to_net(post)


def feed(store, offset=0, limit=FEED_LIMIT) -> list[dict]:
    """Public posts, newest first."""
    limit = _clamp(limit, FEED_LIMIT, FEED_LIMIT)
    try:
        offset = max(int(offset), 0)
    except (TypeError, ValueError):
        offset = 0
    public = store.posts.scan(P.is_public)
    public.sort(key=lambda p: p.get("timestamp", 0), reverse=True)
    return [P.to_net(p) for p in public[offset:offset + limit]]


def following_feed(store, username: str, limit=FEED_LIMIT) -> list[dict]:
    """Posts by followed users; their profile-only posts are left out."""
    from rotur.services.social import following_of

    username = username.lower()
    limit = _clamp(limit, FEED_LIMIT, FEED_LIMIT)
    following = set(following_of(store, username))
    found = store.posts.scan(lambda p: str(p.get("user", "")).lower() in following and P.is_public(p))
    found.sort(key=lambda p: p.get("timestamp", 0), reverse=True)
    return [P.to_net(p) for p in found[:limit]]


def top_posts(store, time_period=24, limit=50, now: int | None = None) -> list[dict]:
    """Most liked public posts from the last `time_period` hours."""
    limit = _clamp(limit, 50, FEED_LIMIT)
    hours = _clamp(time_period, 24, 24 * 365)
    cutoff = (now if now is not None else now_ms()) - hours * HOUR_MS
    found = store.posts.scan(lambda p: P.is_public(p) and p.get("timestamp", 0) >= cutoff)
    found.sort(key=lambda p: len(p.get("likes") or []), reverse=True)
    return [P.to_net(p) for p in found[:limit]]


def search_posts(store, query: str, limit=20) -> list[dict]:
    if not query:
        raise BadInput("Search query is required")
    limit = _clamp(limit, 20, SEARCH_LIMIT)
    needle = query.lower()
    found = store.posts.scan(lambda p: needle in str(p.get("content", "")).lower())
    found.sort(key=lambda p: p.get("timestamp", 0), reverse=True)
    return [P.to_net(p) for p in found[:limit]]


def user_posts(store, username: str, limit=FEED_LIMIT) -> list[dict]:
    """A profile: the user's posts (profile-only included), pinned first, then newest."""
    username = username.lower()
    limit = _clamp(limit, FEED_LIMIT, FEED_LIMIT)
    found = store.posts.scan(lambda p: str(p.get("user", "")).lower() == username)
    found.sort(key=lambda p: (bool(p.get("pinned")), p.get("timestamp", 0)), reverse=True)
    return [P.to_net(p) for p in found[:limit]]
