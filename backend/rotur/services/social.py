# rotur/services/social.py
"""Follower graph, friendships and blocking."""
from rotur.core.errors import BadInput, Forbidden, NotFound, PreconditionFailed
from rotur.models import user as U
from rotur.services.events import add_user_event


def _is_blocked_by(target: dict, username: str) -> bool:
    return username.lower() in U.get_set(target, "sys.blocked")


# ==============================================================================
# I. Followers
# ==============================================================================
def follow(store, follower: str, target: str, notifier=None) -> dict:
    follower, target = follower.lower(), (target or "").lower()
    if not target:
        raise BadInput("Target username is required")
    with store.users.read() as users:
        target_doc = users.get(target)
        follower_doc = users.get(follower)
        if target_doc is None:
            raise NotFound("User not found")
        if follower_doc is not None and not U.can(follower_doc, "follow"):
            raise Forbidden("Your account standing does not allow following")
        if _is_blocked_by(target_doc, follower):
            raise PreconditionFailed("You cant follow this user")
    if follower == target:
        raise BadInput("You cannot follow yourself")

    with store.followers.write() as followers:
        record = followers.setdefault(target, {"followers": []})
        names = record.setdefault("followers", [])
        if follower in names:
            raise PreconditionFailed(f"You are already following {target}")
        names.append(follower)
        current = list(names)

    add_user_event(store, target, "follow", {"username": follower, "followers": current})
    if notifier is not None:
        notifier.broadcast("followers", {"username": target, "followers": len(current)})
    return {"message": f"You are now following {target}", "followers": len(current)}


def unfollow(store, follower: str, target: str) -> dict:
    follower, target = follower.lower(), (target or "").lower()
    if not target:
        raise BadInput("Target username is required")
    with store.followers.write() as followers:
        record = followers.get(target) or {}
        names = record.get("followers") or []
        if follower not in names:
            raise PreconditionFailed("You are not following this user")
        record["followers"] = [n for n in names if n != follower]
    return {"message": f"You are no longer following {target}"}


def followers_of(store, username: str) -> list[str]:
    username = username.lower()
    if not store.users.exists(username):
        raise NotFound("User not found")
    record = store.followers.lookup(username) or {}
    return list(record.get("followers") or [])


def following_of(store, username: str) -> list[str]:
    username = username.lower()
    with store.followers.read() as followers:
        return sorted(target for target, record in followers.items() if username in (record.get("followers") or []))


# ==============================================================================
# II. Friends
# ==============================================================================
def send_friend_request(store, sender: str, target: str) -> None:
    sender, target = sender.lower(), (target or "").lower()
    if not target:
        raise BadInput("Username cannot be empty")
    if sender == target:
        raise BadInput("You need other friends")
    with store.users.write() as users:
        src, dst = users.get(sender), users.get(target)
        if dst is None:
            raise NotFound("Account Does Not Exist")
        if src is None:
            raise NotFound("User not found")
        if not U.can(src, "friend"):
            raise Forbidden("Your account standing does not allow friend requests")
        if _is_blocked_by(dst, sender):
            raise PreconditionFailed("You cant send friend requests to this user")
        if target in U.get_set(src, "sys.friends") or sender in U.get_set(dst, "sys.friends"):
            raise PreconditionFailed("Already Friends")
        if not U.add_to_set(dst, "sys.requests", sender):
            raise PreconditionFailed("Already Requested")


def accept_friend_request(store, username: str, requester: str) -> None:
    username, requester = username.lower(), (requester or "").lower()
    if not requester:
        raise BadInput("Username cannot be empty")
    if username == requester:
        raise BadInput("Invalid Operation")
    with store.users.write() as users:
        me, other = users.get(username), users.get(requester)
        if other is None:
            raise NotFound("Account Does Not Exist")
        if requester not in U.get_set(me, "sys.requests"):
            raise PreconditionFailed("No Pending Request")
        U.remove_from_set(me, "sys.requests", requester)
        U.add_to_set(me, "sys.friends", requester)
        U.add_to_set(other, "sys.friends", username)


def reject_friend_request(store, username: str, requester: str) -> None:
    requester = (requester or "").lower()
    if not requester:
        raise BadInput("Username cannot be empty")
    with store.users.write() as users:
        me = users.get(username.lower())
        if me is None or not U.remove_from_set(me, "sys.requests", requester):
            raise PreconditionFailed("No Pending Request")


def remove_friend(store, username: str, other_name: str) -> None:
    username, other_name = username.lower(), (other_name or "").lower()
    if not other_name:
        raise BadInput("Username cannot be empty")
    if username == other_name:
        raise BadInput("Cannot Remove Yourself")
    with store.users.write() as users:
        me, other = users.get(username), users.get(other_name)
        if other is None:
            raise NotFound("Account Does Not Exist")
        if other_name not in U.get_set(me, "sys.friends"):
            raise PreconditionFailed("Not Friends")
        U.remove_from_set(me, "sys.friends", other_name)
        U.remove_from_set(other, "sys.friends", username)


def friends_of(store, username: str) -> dict:
    user = store.users.lookup(username)
    if user is None:
        raise NotFound("User not found")
    return {"friends": U.get_set(user, "sys.friends"), "requests": U.get_set(user, "sys.requests")}


# ==============================================================================
# III. Blocking
# ==============================================================================
def block(store, username: str, target: str) -> list[str]:
    username, target = username.lower(), (target or "").lower()
    if not target:
        raise BadInput("Username is required")
    if username == target:
        raise BadInput("Cannot block yourself")
    with store.users.write() as users:
        if target not in users:
            raise NotFound("User not found")
        me = users[username]
        if not U.add_to_set(me, "sys.blocked", target):
            raise PreconditionFailed("User already blocked")
        return U.get_set(me, "sys.blocked")


def unblock(store, username: str, target: str) -> list[str]:
    target = (target or "").lower()
    if not target:
        raise BadInput("Username is required")
    with store.users.write() as users:
        me = users[username.lower()]
        if not U.remove_from_set(me, "sys.blocked", target):
            raise NotFound("User not blocked")
        return U.get_set(me, "sys.blocked")


def blocked_of(store, username: str) -> list[str]:
    user = store.users.lookup(username)
    if user is None:
        raise NotFound("User not found")
    return U.get_set(user, "sys.blocked")
