# rotur/models/user.py
"""
User document helpers.

A user is an open JSON object. Fields under the reserved `sys.` prefix, and a
handful of locked top-level fields, are managed by the server; anything else
is a user-defined extension key. These helpers read and write the well-known
fields with the coercions older documents need, so services never poke at
raw values directly.
"""
from dataclasses import dataclass

from rotur.core import money
from rotur.core.timeutil import coerce_ms, now_ms

RESERVED_PREFIX = "sys."
LOCKED_KEYS = frozenset({"username", "last_login", "max_size", "key", "created", "system", "id", "password"})
PRIVATE_KEYS = frozenset({"password", "key", "email", "sys.logins", "sys.transactions", "sys.requests", "sys.notes"})
MAX_KEY_LENGTH = 20
MAX_VALUE_LENGTH = 1000
MAX_USER_SIZE = 25000

FOUNTAIN_USERNAME = "rotur"  # credit source for mints and daily claims; its own balance never moves
DELETED_USER = "Deleted User"


@dataclass(frozen=True)
class TierBenefits:
    """Per-tier limits."""
    max_keys: int
    max_login_history: int
    max_transaction_history: int
    file_system_size: int  # OFSF quota in bytes
    bio_length: int
    daily_credit_multiplier: int


TIERS = {
    "free": TierBenefits(5, 10, 20, 5_000_000, 200, 1),
    "lite": TierBenefits(5, 10, 20, 10_000_000, 200, 1),
    "plus": TierBenefits(5, 10, 20, 15_000_000, 200, 1),
    "drive": TierBenefits(20, 100, 100, 15_000_000, 500, 2),
    "pro": TierBenefits(50, 100, 500, 1_000_000_000, 1000, 3),
    "max": TierBenefits(500, 100, 500, 10_000_000_000, 1000, 3),
}

# Standing levels, best to worst.
STANDING_GOOD = "good"
STANDING_WARNING = "warning"
STANDING_SUSPENDED = "suspended"
STANDING_BANNED = "banned"
STANDINGS = (STANDING_GOOD, STANDING_WARNING, STANDING_SUSPENDED, STANDING_BANNED)

# Which standings may perform which action.
STANDING_GATES = {
    "post": {STANDING_GOOD},
    "reply": {STANDING_GOOD},
    "repost": {STANDING_GOOD},
    "sell": {STANDING_GOOD},
    "transfer": {STANDING_GOOD},
    "friend": {STANDING_GOOD},
    "buy": {STANDING_GOOD, STANDING_WARNING},
    "follow": {STANDING_GOOD, STANDING_WARNING},
}


def username_of(user: dict) -> str:
    return str(user.get("username", "")).lower()


def is_reserved_key(key: str) -> bool:
    return key.startswith(RESERVED_PREFIX) or key in LOCKED_KEYS


# ---------- credits ----------
def get_credits(user: dict) -> float:
    return money.to_credits(user.get("sys.currency"))


def set_credits(user: dict, value) -> None:
    user["sys.currency"] = money.to_credits(value)


def add_transaction(user: dict, tx: dict, now: int | None = None) -> None:
    """Prepend a transaction record, keeping the list within the tier's history size."""
    tx = dict(tx)
    tx.setdefault("time", now if now is not None else now_ms())
    txs = user.get("sys.transactions")
    if not isinstance(txs, list):
        txs = []
    txs.insert(0, tx)
    limit = benefits(user, now).max_transaction_history
    user["sys.transactions"] = txs[:limit]


# ---------- subscription tier ----------
def get_subscription(user: dict, now: int | None = None) -> dict:
    """Effective subscription: a lapsed or malformed record reads as the free tier."""
    free = {"active": False, "tier": "Free", "next_billing": 0}
    sub = user.get("sys.subscription")
    if not isinstance(sub, dict):
        return free
    next_billing = coerce_ms(sub.get("next_billing")) or 0
    tier = str(sub.get("tier") or "Free")
    if next_billing == 0 or tier.lower() not in TIERS:
        return free
    if not sub.get("active") or next_billing < (now if now is not None else now_ms()):
        return free
    return {"active": True, "tier": tier, "next_billing": next_billing}


def tier_name(user: dict, now: int | None = None) -> str:
    return get_subscription(user, now)["tier"].lower()


def benefits(user: dict, now: int | None = None) -> TierBenefits:
    return TIERS[tier_name(user, now)]


def max_size(user: dict, now: int | None = None) -> int:
    return benefits(user, now).file_system_size


# ---------- standing ----------
def get_standing(user: dict) -> str:
    standing = user.get("sys.standing")
    return standing if standing in STANDINGS else STANDING_GOOD


def can(user: dict, action: str) -> bool:
    return get_standing(user) in STANDING_GATES[action]


# ---------- social sets (lists of lowercased usernames) ----------
def get_set(user: dict, field: str) -> list[str]:
    values = user.get(field)
    if not isinstance(values, list):
        return []
    return [str(v).lower() for v in values]


def add_to_set(user: dict, field: str, username: str) -> bool:
    values = get_set(user, field)
    username = username.lower()
    if username in values:
        return False
    values.append(username)
    user[field] = values
    return True


def remove_from_set(user: dict, field: str, username: str) -> bool:
    values = get_set(user, field)
    username = username.lower()
    if username not in values:
        return False
    user[field] = [v for v in values if v != username]
    return True


# ---------- views ----------
def private_view(user: dict, now: int | None = None) -> dict:
    """What a user sees of their own account (no password)."""
    out = {k: v for k, v in user.items() if k != "password"}
    out["sys.currency"] = get_credits(user)
    out["sys.subscription"] = get_subscription(user, now)
    out["max_size"] = str(max_size(user, now))
    return out


def public_view(user: dict, now: int | None = None) -> dict:
    """What other users see: everything except credentials and private history."""
    out = {k: v for k, v in user.items() if k not in PRIVATE_KEYS}
    out["sys.currency"] = get_credits(user)
    out["sys.subscription"] = get_subscription(user, now)
    return out
