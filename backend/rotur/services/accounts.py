# rotur/services/accounts.py
"""
Account operations: registration, login, profile keys, deletion and the
credit economy (transfers, admin mints, daily claims).

Credit changes happen under the users write lock so balances can never be
observed half-updated, and every change leaves a transaction record on each
side that moved.
"""
import json
import logging

from rotur.core import money
from rotur.core.errors import BadInput, Conflict, Forbidden, NotFound, PreconditionFailed, Unauthorized
from rotur.core.security import (
    generate_id,
    generate_token,
    hash_password,
    needs_rehash,
    validate_password_hash,
    validate_username,
    verify_password,
)
from rotur.core.timeutil import now_ms, now_s
from rotur.models import user as U
from rotur.services import marriage

logger = logging.getLogger("uvicorn.error")

DAILY_CLAIM_SECONDS = 86400
MAX_NOTE_LENGTH = 50


def _require(users: dict, username: str, message: str = "User not found") -> dict:
    user = users.get(username.lower())
    if user is None:
        raise NotFound(message)
    return user


# ==============================================================================
# I. Registration and login
# ==============================================================================
def register(store, username: str, password: str, email: str | None = None, now: int | None = None) -> dict:
    """
    Create an account.

    Args:
        store: Application store
        username: Desired name; stored lowercased
        password: 32-hex client-side password hash
        email: Optional email, unique case-insensitively

    Returns:
        dict: The new user's private view (includes the `key` token)

    Raises:
        BadInput: Username or password hash rejected
        Conflict: Username or email already in use
    """
    error = validate_username(username or "")
    if error:
        raise BadInput(error)
    error = validate_password_hash(password or "")
    if error:
        raise BadInput(error)
    username = username.lower()
    email = (email or "").strip()
    password_hash = hash_password(password)  # slow, keep it outside the lock
    now = now if now is not None else now_ms()

    doc = {
        "username": username,
        "email": email,
        "password": password_hash,
        "key": generate_token(),
        "created": now,
        "sys.id": generate_id(),
        "sys.currency": 0.0,
        "sys.friends": [],
        "sys.requests": [],
        "sys.blocked": [],
        "sys.transactions": [],
        "sys.logins": [],
        "sys.standing": U.STANDING_GOOD,
        "sys.subscription": {"active": False, "tier": "Free", "next_billing": 0},
        "max_size": str(U.TIERS["free"].file_system_size),
    }
    with store.users.write() as users:
        if username in users:
            raise Conflict("Username already in use", code="USERNAME_EXISTS")
        if email and store.users.email_owner(users, email):
            raise Conflict("Email already in use", code="EMAIL_EXISTS")
        users[username] = doc
        view = U.private_view(doc, now)
    logger.info("[accounts] registered %s", username)
    return view


def login(store, username: str, password: str, origin: str = "", user_agent: str = "", now: int | None = None) -> dict:
    """Verify credentials and record a login; returns the private view."""
    username = (username or "").lower()
    found = store.users.lookup(username)
    if found is None:
        raise NotFound("User not found")
    if found.get("sys.banned"):
        raise Forbidden("Account is banned", code="ACCOUNT_BANNED")
    stored = str(found.get("password", ""))
    if not verify_password(password or "", stored):
        raise Unauthorized("Invalid password", code="AUTH_INVALID_PASSWORD")
    upgraded = hash_password(password) if needs_rehash(stored) else None

    now = now if now is not None else now_ms()
    with store.users.write() as users:
        user = _require(users, username)
        if upgraded and user.get("password") == stored:
            user["password"] = upgraded
        logins = user.get("sys.logins")
        if not isinstance(logins, list):
            logins = []
        logins.append({"origin": origin, "userAgent": user_agent, "timestamp": now})
        user["sys.logins"] = logins[-U.benefits(user, now).max_login_history:]
        user["last_login"] = now
        return U.private_view(user, now)


def get_user(store, username: str, viewer: str | None = None) -> dict:
    user = store.users.lookup(username)
    if user is None:
        raise NotFound("User not found")
    if viewer and viewer.lower() == U.username_of(user):
        return U.private_view(user)
    return U.public_view(user)


# ==============================================================================
# II. Profile keys
# ==============================================================================
def _check_writable_key(key: str, admin: bool) -> None:
    if not key:
        raise BadInput("Key is required")
    if len(key) > U.MAX_KEY_LENGTH:
        raise BadInput(f"Key exceeds {U.MAX_KEY_LENGTH} characters")
    if key in U.LOCKED_KEYS:
        raise Forbidden(f"Key '{key}' is locked")
    if key.startswith(U.RESERVED_PREFIX) and not admin:
        raise Forbidden("System keys cannot be modified")


def update_user(store, username: str, key: str, value, admin: bool = False) -> dict:
    """
    Set one key on a user document.

    Non-admin callers may only touch user-defined keys. String values are
    bounded, and the whole serialized document must stay under the per-user
    size limit.
    """
    _check_writable_key(key, admin)
    if key == "sys.currency":
        value = money.parse_amount(value, minimum="0")
    if isinstance(value, str) and len(value) > U.MAX_VALUE_LENGTH:
        raise BadInput(f"Value exceeds {U.MAX_VALUE_LENGTH} characters")
    with store.users.write() as users:
        user = _require(users, username)
        candidate = dict(user)
        candidate[key] = value
        if len(json.dumps(candidate, separators=(",", ":"))) > U.MAX_USER_SIZE:
            raise BadInput("User data exceeds size limit")
        if key == "sys.currency":
            U.set_credits(user, value)
        else:
            user[key] = value
        return {"username": U.username_of(user), "key": key, "value": user[key]}


def delete_user_key(store, username: str, key: str, admin: bool = False) -> None:
    _check_writable_key(key, admin)
    with store.users.write() as users:
        user = _require(users, username)
        if key not in user:
            raise NotFound(f"Key '{key}' not found")
        del user[key]


# ==============================================================================
# III. Deletion and bans
# ==============================================================================
def delete_user(store, username: str, ofsf=None) -> None:
    """
    Remove an account and every reference other users hold to it, including
    a partner's marriage record. Posts survive, reassigned to the
    "Deleted User" placeholder.
    """
    username = username.lower()
    with store.users.write() as users:
        if users.pop(username, None) is None:
            raise NotFound("User not found")
        for other in users.values():
            for field in ("sys.friends", "sys.requests", "sys.blocked"):
                U.remove_from_set(other, field, username)
        marriage.forget(users, username)

    with store.posts.write() as posts:
        for post in posts:
            if str(post.get("user", "")).lower() == username:
                post["user"] = U.DELETED_USER

    with store.followers.write() as followers:
        followers.pop(username, None)
        for record in followers.values():
            names = record.get("followers") or []
            if username in names:
                record["followers"] = [n for n in names if n != username]

    with store.statuses.write() as statuses:
        statuses.pop(username, None)

    if ofsf is not None:
        ofsf.delete_all(username)
    logger.info("[accounts] deleted user %s", username)


def ban_user(store, username: str) -> None:
    """Soft ban: strip the document down to username, email and the banned flag."""
    with store.users.write() as users:
        user = _require(users, username)
        users[U.username_of(user)] = {
            "username": user.get("username"),
            "email": user.get("email", ""),
            "sys.banned": True,
        }
    logger.info("[accounts] banned %s", username)


# ==============================================================================
# IV. Credits
# ==============================================================================
def _clean_note(note: str | None) -> str:
    note = (note or "").strip() or "transfer"
    return note[:MAX_NOTE_LENGTH]


def transfer(store, sender: str, recipient: str, amount, note: str | None = None, notifier=None, now: int | None = None) -> dict:
    """
    Move credits between two users.

    The sender loses exactly `amount` and the recipient gains exactly `amount`;
    the total over all users is unchanged. The fountain account never moves.

    Raises:
        BadInput: Amount below 0.01, or sender and recipient are the same
        NotFound: Either user is missing
        Forbidden: Sender's standing forbids transfers
        PreconditionFailed: Sender cannot cover the amount
    """
    value = money.parse_amount(amount)
    sender, recipient = (sender or "").lower(), (recipient or "").lower()
    if not recipient:
        raise BadInput("Recipient username must be provided")
    if sender == recipient:
        raise BadInput("Cannot send credits to yourself")
    note = _clean_note(note)
    now = now if now is not None else now_ms()

    with store.users.write() as users:
        src = _require(users, sender, "Sender user not found")
        dst = _require(users, recipient, "Recipient user not found")
        if not U.can(src, "transfer"):
            raise Forbidden("Your account standing does not allow transfers")
        src_balance = U.get_credits(src)
        if sender != U.FOUNTAIN_USERNAME and src_balance < value:
            raise PreconditionFailed(
                f"Insufficient funds (required: {value:.2f}, available: {src_balance:.2f})",
                code="INSUFFICIENT_FUNDS",
            )
        if sender != U.FOUNTAIN_USERNAME:
            U.set_credits(src, money.sub(src_balance, value))
        if recipient != U.FOUNTAIN_USERNAME:
            U.set_credits(dst, money.add(U.get_credits(dst), value))
        U.add_transaction(src, {
            "type": "out", "user": recipient, "amount": value, "note": note,
            "new_total": U.get_credits(src),
        }, now)
        U.add_transaction(dst, {
            "type": "in", "user": sender, "amount": value, "note": note,
            "new_total": U.get_credits(dst),
        }, now)
        src_txs, dst_txs = list(src["sys.transactions"]), list(dst["sys.transactions"])

    if notifier is not None:
        notifier.broadcast("user_account_update", {"username": sender, "key": "sys.transactions", "value": src_txs})
        notifier.broadcast("user_account_update", {"username": recipient, "key": "sys.transactions", "value": dst_txs})
    return {"from": sender, "to": recipient, "amount": value}


def mint(store, username: str, amount, note: str = "mint", now: int | None = None) -> dict:
    """Admin credit from the fountain. The fountain itself cannot be minted to."""
    value = money.parse_amount(amount)
    if (username or "").lower() == U.FOUNTAIN_USERNAME:
        raise BadInput("Cannot mint credits to the fountain account")
    with store.users.write() as users:
        user = _require(users, username)
        U.set_credits(user, money.add(U.get_credits(user), value))
        U.add_transaction(user, {
            "type": "in", "user": U.FOUNTAIN_USERNAME, "amount": value, "note": _clean_note(note),
            "new_total": U.get_credits(user),
        }, now)
        return {"username": U.username_of(user), "amount": value, "balance": U.get_credits(user)}


def _hours(seconds: float) -> str:
    return f"{seconds / 3600:.1f}".removesuffix("0").removesuffix(".")


def claim_daily(store, username: str, now: int | None = None) -> dict:
    """
    Credit the tier's daily amount, at most once per 24 hours.

    Args:
        now: Current time in seconds (claims are tracked in seconds)
    """
    username = username.lower()
    now = now if now is not None else now_s()
    with store.write_many("daily_claims", "users") as (claims, users):
        user = _require(users, username)
        last = claims.get(username)
        if isinstance(last, (int, float)) and now - last < DAILY_CLAIM_SECONDS:
            wait = DAILY_CLAIM_SECONDS - (now - last)
            raise PreconditionFailed(f"Daily claim already made, please wait {_hours(wait)} hours", code="ALREADY_CLAIMED")
        amount = U.benefits(user, now * 1000).daily_credit_multiplier
        claims[username] = now
        U.set_credits(user, money.add(U.get_credits(user), amount))
        U.add_transaction(user, {
            "type": "in", "user": U.FOUNTAIN_USERNAME, "amount": float(amount), "note": "daily claim",
            "new_total": U.get_credits(user),
        }, now * 1000)
        return {"amount": float(amount), "balance": U.get_credits(user)}
