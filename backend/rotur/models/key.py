# rotur/models/key.py
"""Access key records and their outward views."""
from rotur.core.timeutil import coerce_ms

TYPE_STANDARD = "standard"
TYPE_SUBSCRIPTION = "subscription"

# Fields a holder who is not the creator may not see.
CREATOR_ONLY_FIELDS = ("users", "data", "total_income", "webhook")


def is_subscription(key: dict) -> bool:
    return isinstance(key.get("subscription"), dict)


def holder_next_billing(holder: dict) -> int | None:
    return coerce_ms(holder.get("next_billing"))


def holder_cancel_at(holder: dict) -> int | None:
    return coerce_ms(holder.get("cancel_at"))


def to_public(key: dict) -> dict:
    return {
        "key": key.get("key"),
        "name": key.get("name"),
        "price": key.get("price", 0),
        "type": key.get("type", TYPE_STANDARD),
    }


def to_net(key: dict) -> dict:
    out = {
        "key": key.get("key"),
        "name": key.get("name"),
        "price": key.get("price", 0),
        "type": key.get("type", TYPE_STANDARD),
        "creator": key.get("creator"),
        "users": key.get("users", {}),
        "data": key.get("data"),
        "total_income": key.get("total_income", 0),
        "webhook": key.get("webhook"),
    }
    if is_subscription(key):
        out["subscription"] = key["subscription"]
    return out


def to_holder_view(key: dict) -> dict:
    out = to_net(key)
    for field in CREATOR_ONLY_FIELDS:
        out.pop(field, None)
    return out
