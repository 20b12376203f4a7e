# rotur/services/keys.py
"""
Access keys.

A key is a shareable token its creator sells (once, or on a recurring
subscription) or grants. Holders are listed in the key's `users` map keyed by
lowercased username. Purchases touch both the keys and users collections and
always lock them in that order through `Store.write_many("keys", "users")`.
"""
import json
import logging
import threading
import time

from rotur.core import money
from rotur.core.errors import BadInput, Conflict, Forbidden, NotFound, PreconditionFailed
from rotur.core.security import generate_token
from rotur.core.timeutil import PERIODS, add_period, now_ms
from rotur.models import key as K
from rotur.models import user as U

logger = logging.getLogger("uvicorn.error")

MAX_NAME = 50
MAX_DATA = 1000


class OwnershipCache:
    """
    Short-lived cache of "does user X hold key Y" answers.

    Any key mutation clears it, so a stale answer can only come from a change
    made outside this service (a hot reload of keys.json), and lives at most
    `ttl` seconds.
    """

    def __init__(self, ttl: int = 600):
        self.ttl = ttl
        self._entries: dict[tuple[str, str], tuple[bool, float]] = {}
        self._lock = threading.Lock()

    def get(self, key_id: str, username: str, loader) -> bool:
        now = time.monotonic()
        cache_key = (key_id, username)
        with self._lock:
            hit = self._entries.get(cache_key)
            if hit is not None and hit[1] > now:
                return hit[0]
        owned = loader()
        with self._lock:
            self._entries[cache_key] = (owned, now + self.ttl)
        return owned

    def invalidate(self) -> None:
        with self._lock:
            self._entries.clear()


def _parse_price(value) -> int:
    try:
        price = int(value)
    except (TypeError, ValueError):
        raise BadInput("Price must be a whole number")
    if price < 0:
        raise BadInput("Price must be a non-negative number")
    return price


class KeyService:
    """
    Key operations bound to one store.

    Args:
        store: Application store
        notifier: Outbound notifier for key webhooks (optional)
        cache_ttl: Seconds an ownership answer may be reused
        tax_rate_percent: Share of each sale the platform keeps
    """

    def __init__(self, store, notifier=None, cache_ttl: int = 600, tax_rate_percent: int = 10):
        self.store = store
        self.notifier = notifier
        self.tax_rate_percent = tax_rate_percent
        self.cache = OwnershipCache(cache_ttl)

    # ------------------------------------------------------------------ helpers
    def _find(self, keys: list, key_id: str) -> dict:
        key = self.store.keys.find(keys, key_id)
        if key is None:
            raise NotFound("Key not found")
        return key

    def _owned_by(self, key: dict, username: str) -> dict:
        if str(key.get("creator", "")).lower() != username.lower():
            raise Forbidden("You do not own this key")
        return key

    @staticmethod
    def _name_taken(keys: list, name: str, exclude: str | None = None) -> bool:
        lowered = name.lower()
        return any(
            str(k.get("name", "")).lower() == lowered and k.get("key") != exclude
            for k in keys
        )

    def seller_share(self, price) -> float:
        return money.sub(price, money.percent_of(price, self.tax_rate_percent))

    def _send_webhook(self, key: dict, username: str, content: str) -> None:
        url = key.get("webhook")
        if url and self.notifier is not None:
            self.notifier.webhook(url, {
                "username": username,
                "key": key.get("key"),
                "price": key.get("price", 0),
                "content": content,
                "timestamp": int(time.time()),
            })

    # ------------------------------------------------------------------ creation
    def create(
        self,
        username: str,
        name: str,
        price=0,
        subscription: bool = False,
        frequency=1,
        period: str = "month",
        description: str = "",
        now: int | None = None,
    ) -> dict:
        """
        Create a key owned by `username`.

        Raises:
            BadInput: Missing name, bad price, period or frequency
            Conflict: Another key already uses the name
            PreconditionFailed: Creator reached their tier's key limit
        """
        name = (name or "").strip()
        if not name:
            raise BadInput("Name is required")
        if len(name) > MAX_NAME:
            raise BadInput(f"Name exceeds {MAX_NAME} characters")
        price = _parse_price(price)
        username = username.lower()
        now = now if now is not None else now_ms()
        record = {
            "key": generate_token(),
            "creator": username,
            "users": {username: {"time": now // 1000}},
            "name": name,
            "description": description or "",
            "price": price,
            "data": None,
            "type": K.TYPE_STANDARD,
            "total_income": 0,
            "webhook": None,
        }
        if subscription:
            try:
                frequency = int(frequency or 1)
            except (TypeError, ValueError):
                raise BadInput("Frequency must be a whole number")
            if frequency < 1:
                raise BadInput("Frequency must be at least 1")
            period = (period or "month").lower()
            if period not in PERIODS:
                raise BadInput("Period must be one of day, week, month, year")
            record["type"] = K.TYPE_SUBSCRIPTION
            record["subscription"] = {"active": True, "frequency": frequency, "period": period, "next_billing": None}

        with self.store.write_many("keys", "users") as (keys, users):
            creator = users.get(username)
            if creator is None:
                raise NotFound("User not found")
            limit = U.benefits(creator, now).max_keys
            owned = sum(1 for k in keys if str(k.get("creator", "")).lower() == username)
            if owned >= limit:
                raise PreconditionFailed(f"Key limit reached ({limit})", code="KEY_LIMIT")
            if self._name_taken(keys, name):
                raise Conflict("A key with this name already exists", code="KEY_NAME_EXISTS")
            keys.append(record)
        self.cache.invalidate()
        logger.info("[keys] %s created %s key %s", username, record["type"], record["key"])
        return K.to_net(record)

    # ------------------------------------------------------------------ reads
    def get(self, key_id: str) -> dict:
        key = self.store.keys.lookup(key_id)
        if key is None:
            raise NotFound("Key not found")
        return K.to_public(key)

    def mine(self, username: str) -> list[dict]:
        username = username.lower()
        out = []
        with self.store.keys.read() as keys:
            for key in keys:
                if str(key.get("creator", "")).lower() == username:
                    out.append(json.loads(json.dumps(K.to_net(key))))
                elif username in (key.get("users") or {}):
                    out.append(json.loads(json.dumps(K.to_holder_view(key))))
        return out

    def owns(self, username: str, key_id: str) -> bool:
        username = username.lower()

        def load() -> bool:
            key = self.store.keys.lookup(key_id)
            return key is not None and username in (key.get("users") or {})

        return self.cache.get(key_id, username, load)

    def check(self, key_id: str, username: str) -> dict:
        return {"owned": self.owns(username, key_id), "username": username.lower(), "key": key_id}

    # ------------------------------------------------------------------ purchase
    def buy(self, username: str, key_id: str, now: int | None = None) -> dict:
        """
        Buy access to a key.

        The buyer pays the full price; the creator receives it minus the
        platform tax. Subscription holders get their first `next_billing`
        one period from now.
        """
        username = username.lower()
        now = now if now is not None else now_ms()
        with self.store.write_many("keys", "users") as (keys, users):
            key = self._find(keys, key_id)
            price = int(key.get("price", 0))
            if price < 0:
                raise PreconditionFailed("Key is not for sale")
            holders = key.setdefault("users", {})
            if username in holders:
                raise PreconditionFailed("You already have access to this key")
            buyer = users.get(username)
            if buyer is None:
                raise NotFound("User not found")
            if not U.can(buyer, "buy"):
                raise Forbidden("Your account standing does not allow purchases")
            balance = U.get_credits(buyer)
            if balance < price:
                raise PreconditionFailed("Insufficient balance to buy this key", code="INSUFFICIENT_FUNDS")

            holder = {"time": now // 1000, "price": price}
            if K.is_subscription(key):
                sub = key["subscription"]
                holder["next_billing"] = add_period(now, sub.get("period"), sub.get("frequency"))
            holders[username] = holder
            key["total_income"] = int(key.get("total_income", 0)) + price

            U.set_credits(buyer, money.sub(balance, price))
            U.add_transaction(buyer, {
                "type": "key_buy", "note": "key purchase", "user": key.get("creator"),
                "key_id": key["key"], "key_name": key.get("name"),
                "amount": float(price), "new_total": U.get_credits(buyer),
            }, now)
            creator = str(key.get("creator", "")).lower()
            owner = users.get(creator)
            if owner is not None and creator != username and price > 0:
                share = self.seller_share(price)
                U.set_credits(owner, money.add(U.get_credits(owner), share))
                U.add_transaction(owner, {
                    "type": "key_sale", "note": "key purchase", "user": username,
                    "key_id": key["key"], "key_name": key.get("name"),
                    "amount": share, "new_total": U.get_credits(owner),
                }, now)
            snapshot = json.loads(json.dumps(key))
        self.cache.invalidate()
        self._send_webhook(snapshot, username, f"{username} bought key: {snapshot['key']} for {price} credits")
        logger.info("[keys] %s bought %s for %d", username, key_id, price)
        return {"message": "Key purchased successfully", "key": K.to_holder_view(snapshot), "holder": snapshot["users"][username]}

    def cancel(self, username: str, key_id: str) -> dict:
        """Stop renewing: access lasts until the current period ends, then the sweep removes it."""
        username = username.lower()
        with self.store.keys.write() as keys:
            key = self._find(keys, key_id)
            holder = (key.get("users") or {}).get(username)
            if holder is None:
                raise PreconditionFailed("You do not have access to this key")
            next_billing = K.holder_next_billing(holder)
            if not K.is_subscription(key) or next_billing is None:
                raise PreconditionFailed("This key has no subscription to cancel")
            holder["cancel_at"] = next_billing
        self.cache.invalidate()
        return {"message": "Subscription cancelled", "cancel_at": next_billing}

    # ------------------------------------------------------------------ owner management
    def revoke(self, owner: str, key_id: str, target: str) -> None:
        target = (target or "").lower()
        with self.store.keys.write() as keys:
            key = self._owned_by(self._find(keys, key_id), owner)
            if target == str(key.get("creator", "")).lower():
                raise PreconditionFailed("Cannot revoke the key creator")
            holders = key.get("users") or {}
            if target not in holders:
                raise NotFound("User does not have access to this key")
            del holders[target]
        self.cache.invalidate()

    def delete(self, owner: str, key_id: str) -> None:
        with self.store.keys.write() as keys:
            key = self._owned_by(self._find(keys, key_id), owner)
            keys.remove(key)
        self.cache.invalidate()
        logger.info("[keys] %s deleted key %s", owner, key_id)

    def rename(self, owner: str, key_id: str, name: str) -> dict:
        name = (name or "").strip()
        if not name:
            raise BadInput("Name is required")
        if len(name) > MAX_NAME:
            raise BadInput(f"Name exceeds {MAX_NAME} characters")
        with self.store.keys.write() as keys:
            key = self._owned_by(self._find(keys, key_id), owner)
            if self._name_taken(keys, name, exclude=key["key"]):
                raise Conflict("A key with this name already exists", code="KEY_NAME_EXISTS")
            key["name"] = name
            return K.to_net(json.loads(json.dumps(key)))

    def update(self, owner: str, key_id: str, field: str, value) -> dict:
        """Owner edits of `data`, `webhook`, `price` or `name`."""
        if field == "name":
            return self.rename(owner, key_id, value)
        if field == "price":
            value = _parse_price(value)
        elif field == "data":
            if value is not None and not isinstance(value, str):
                value = json.dumps(value)
            if value is not None and len(value) > MAX_DATA:
                raise BadInput(f"Data exceeds {MAX_DATA} characters")
        elif field == "webhook":
            value = (value or "").strip() or None
            if value and not value.startswith(("http://", "https://")):
                raise BadInput("Webhook must be a valid URL")
        else:
            raise BadInput(f"Cannot update field '{field}'")
        with self.store.keys.write() as keys:
            key = self._owned_by(self._find(keys, key_id), owner)
            key[field] = value
            return K.to_net(json.loads(json.dumps(key)))

    # ------------------------------------------------------------------ admin
    def admin_add(self, key_id: str, username: str, now: int | None = None) -> dict:
        username = (username or "").lower()
        now = now if now is not None else now_ms()
        with self.store.write_many("keys", "users") as (keys, users):
            key = self._find(keys, key_id)
            if username not in users:
                raise NotFound("User not found")
            holders = key.setdefault("users", {})
            if username in holders:
                raise PreconditionFailed("User already has access to this key")
            holder = {"time": now // 1000, "price": 0}
            if K.is_subscription(key):
                sub = key["subscription"]
                holder["next_billing"] = add_period(now, sub.get("period"), sub.get("frequency"))
            holders[username] = holder
        self.cache.invalidate()
        return holder

    def admin_remove(self, key_id: str, username: str) -> None:
        username = (username or "").lower()
        with self.store.keys.write() as keys:
            key = self._find(keys, key_id)
            holders = key.get("users") or {}
            if username not in holders:
                raise NotFound("User does not have access to this key")
            del holders[username]
        self.cache.invalidate()
