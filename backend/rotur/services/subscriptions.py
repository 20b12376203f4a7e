# rotur/services/subscriptions.py
"""
Subscription engine.

One periodic task sweeps every subscription key under the keys write lock.
For each holder whose `next_billing` has passed it either:
  - evicts them without charging when their `cancel_at` has been reached
  - charges the key price under the users write lock and moves `next_billing`
    forward by exactly one period from its previous value
  - evicts them when they cannot pay (or no longer exist)

A holder far behind is charged once per sweep; each sweep advances them by
one period until they catch up.
"""
import json
import logging
import time
from dataclasses import asdict, dataclass

from rotur.core import money
from rotur.core.tasks import periodic
from rotur.core.timeutil import add_period, now_ms
from rotur.models import key as K
from rotur.models import user as U
from rotur.services.events import add_user_event

logger = logging.getLogger("uvicorn.error")

CHARGED = "charged"
INSUFFICIENT = "insufficient"
MISSING = "missing"


@dataclass
class SweepReport:
    keys_checked: int = 0
    charged: int = 0
    evicted: int = 0
    cancelled: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class SubscriptionEngine:
    """
    Charges recurring key holders.

    Args:
        store: Application store
        notifier: Outbound notifier for `sys.key_lost` events and key webhooks
        interval: Seconds between sweeps when run as a background task
        tax_rate_percent: Share of each renewal the platform keeps
        on_change: Called after a sweep that changed any holder (cache invalidation)
    """

    def __init__(self, store, notifier=None, interval: int = 3600, tax_rate_percent: int = 10, on_change=None):
        self.store = store
        self.notifier = notifier
        self.interval = interval
        self.tax_rate_percent = tax_rate_percent
        self.on_change = on_change

    def _charge(self, key: dict, username: str, creator: str, price: int, now: int) -> str:
        with self.store.users.write() as users:
            buyer = users.get(username)
            if buyer is None:
                return MISSING
            balance = U.get_credits(buyer)
            if balance < price:
                logger.info(
                    "[subscriptions] %s cannot pay %d for key %s (available: %.2f)",
                    username, price, key.get("key"), balance,
                )
                return INSUFFICIENT
            U.set_credits(buyer, money.sub(balance, price))
            U.add_transaction(buyer, {
                "type": "key_buy", "note": "key purchase", "user": creator,
                "key_id": key.get("key"), "key_name": key.get("name"),
                "amount": float(price), "new_total": U.get_credits(buyer),
            }, now)
            owner = users.get(creator)
            if owner is not None:
                share = money.sub(price, money.percent_of(price, self.tax_rate_percent))
                U.set_credits(owner, money.add(U.get_credits(owner), share))
                U.add_transaction(owner, {
                    "type": "key_sale", "note": "key purchase", "user": username,
                    "key_id": key.get("key"), "key_name": key.get("name"),
                    "amount": share, "new_total": U.get_credits(owner),
                }, now)
            return CHARGED

    def sweep(self, now: int | None = None) -> SweepReport:
        """Process every subscription key once; returns counts of what happened."""
        now = now if now is not None else now_ms()
        report = SweepReport()
        lost, webhooks = [], []

        with self.store.keys.write() as keys:
            for key in keys:
                if not K.is_subscription(key):
                    continue
                report.keys_checked += 1
                creator = str(key.get("creator", "")).lower()
                if not self.store.users.exists(creator):
                    logger.warning("[subscriptions] key %s has no creator %s, skipping", key.get("key"), creator)
                    continue
                sub = key["subscription"]
                holders = key.get("users") or {}
                evict = []
                for username, holder in holders.items():
                    if username == creator or not isinstance(holder, dict):
                        continue
                    next_billing = K.holder_next_billing(holder)
                    if next_billing is None:
                        continue
                    cancel_at = K.holder_cancel_at(holder)
                    if cancel_at is not None and now >= cancel_at:
                        evict.append((username, "cancelled"))
                        report.cancelled += 1
                        continue
                    if now < next_billing:
                        continue
                    try:
                        price = int(holder.get("price", 0))
                    except (TypeError, ValueError):
                        price = 0
                    if price <= 0:
                        evict.append((username, "no price"))
                        report.evicted += 1
                        continue

                    outcome = self._charge(key, username, creator, price, now)
                    if outcome == MISSING:
                        evict.append((username, "user missing"))
                        report.evicted += 1
                    elif outcome == INSUFFICIENT:
                        evict.append((username, "payment failure"))
                        report.evicted += 1
                        lost.append({"username": username, "key": key.get("key"), "key_name": key.get("name")})
                    else:
                        holder["next_billing"] = add_period(next_billing, sub.get("period"), sub.get("frequency"))
                        key["total_income"] = int(key.get("total_income", 0)) + price
                        report.charged += 1
                        logger.info(
                            "[subscriptions] billed %s %d for key %s, next billing %d",
                            username, price, key.get("key"), holder["next_billing"],
                        )
                        if key.get("webhook"):
                            webhooks.append((key["webhook"], {
                                "username": username,
                                "key": key.get("key"),
                                "price": key.get("price", 0),
                                "content": f"{username} was charged by key: {key.get('key')} for {price} credits",
                                "timestamp": int(time.time()),
                            }))
                for username, reason in evict:
                    holders.pop(username, None)
                    logger.info("[subscriptions] removed %s from key %s (%s)", username, key.get("key"), reason)

        for event in lost:
            if self.notifier is not None:
                self.notifier.notify("sys.key_lost", event)
            if self.store.users.exists(event["username"]):
                add_user_event(self.store, event["username"], "key_lost", {"key": event["key"], "key_name": event["key_name"]})
        if self.notifier is not None:
            for url, payload in webhooks:
                self.notifier.webhook(url, payload)
        if self.on_change is not None and (report.charged or report.evicted or report.cancelled):
            self.on_change()

        logger.info(
            "[subscriptions] sweep done: %d keys checked, %d charged, %d evicted, %d cancelled",
            report.keys_checked, report.charged, report.evicted, report.cancelled,
        )
        return report

    def debug(self, now: int | None = None) -> list[dict]:
        """The engine's view of every subscription key, also written to the log."""
        now = now if now is not None else now_ms()
        out = []
        with self.store.keys.read() as keys:
            for key in keys:
                if not K.is_subscription(key):
                    continue
                sub = key["subscription"]
                holders = []
                for username, holder in (key.get("users") or {}).items():
                    if not isinstance(holder, dict):
                        continue
                    next_billing = K.holder_next_billing(holder)
                    holders.append({
                        "username": username,
                        "price": holder.get("price", 0),
                        "next_billing": next_billing,
                        "cancel_at": K.holder_cancel_at(holder),
                        "due": next_billing is not None and now >= next_billing,
                    })
                out.append({
                    "key": key.get("key"),
                    "name": key.get("name"),
                    "creator": key.get("creator"),
                    "period": sub.get("period"),
                    "frequency": sub.get("frequency"),
                    "price": key.get("price", 0),
                    "holders": holders,
                })
        out = json.loads(json.dumps(out))
        for entry in out:
            logger.info(
                "[subscriptions] key %s (creator %s) every %s %s, %d holders",
                entry["key"], entry["creator"], entry["frequency"], entry["period"], len(entry["holders"]),
            )
        logger.info("[subscriptions] total subscription keys: %d", len(out))
        return out

    async def run(self) -> None:
        await periodic("subscriptions", self.interval, self.sweep)
