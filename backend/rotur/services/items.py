# rotur/services/items.py
"""
Marketplace items.

Items are identified by a case-insensitive name. Owner and author are stored as
lowercased usernames; transfer history timestamps are in seconds.
"""
import copy
import logging

from rotur.core import money
from rotur.core.errors import BadInput, Conflict, Forbidden, NotFound, PreconditionFailed
from rotur.core.timeutil import now_s
from rotur.models import item as I
from rotur.models import user as U
from rotur.services.events import add_user_event

logger = logging.getLogger("uvicorn.error")

SELLING_LIMIT = 100


def _find(store, items: list, name: str) -> dict:
    item = store.items.find(items, name or "")
    if item is None:
        raise NotFound("Item not found")
    return item


def _owned(item: dict, username: str, action: str) -> dict:
    if str(item.get("owner", "")).lower() != username.lower():
        raise Forbidden(f"You are not authorized to {action} this item")
    return item


def _require_seller(store, username: str) -> None:
    user = store.users.lookup(username)
    if user is None:
        raise NotFound("User not found")
    if not U.can(user, "sell"):
        raise Forbidden("Your account standing does not allow selling")


def _parse_price(value) -> int:
    if isinstance(value, bool):
        raise BadInput("Invalid price")
    try:
        price = int(value)
    except (TypeError, ValueError):
        raise BadInput("Invalid price")
    if price < 0:
        raise BadInput("Price cannot be negative")
    return price


def _history(kind: str, to: str, from_: str | None, now: int, price: int | None = None) -> dict:
    record = {"from": from_, "to": to, "timestamp": now, "type": kind}
    if price is not None:
        record["price"] = price
    return record


def create_item(
    store,
    username: str,
    name: str,
    description: str = "",
    price=0,
    selling: bool = False,
    private_data=None,
    now: int | None = None,
) -> dict:
    """
    Create an item owned and authored by `username`.

    Raises:
        BadInput: Missing or non-ASCII name, over-long fields, negative price
        Conflict: Name already taken (case-insensitive)
        Forbidden: Listing for sale while the owner's standing forbids selling
    """
    username = username.lower()
    if not name:
        raise BadInput("Item name is required")
    if not name.isascii():
        raise BadInput("Item name must contain only ASCII characters")
    if len(name) > I.MAX_NAME:
        raise BadInput(f"Item name exceeds {I.MAX_NAME} characters")
    description = description or ""
    if len(description) > I.MAX_DESCRIPTION:
        raise BadInput(f"Description exceeds {I.MAX_DESCRIPTION} characters")
    price = _parse_price(price or 0)
    if selling:
        _require_seller(store, username)
    now = now if now is not None else now_s()
    item = {
        "name": name,
        "description": description,
        "price": price,
        "selling": bool(selling),
        "author": username,
        "owner": username,
        "private_data": private_data,
        "created": now,
        "transfer_history": [_history("creation", username, None, now)],
        "total_income": 0,
    }
    with store.items.write() as items:
        if store.items.find(items, name) is not None:
            raise Conflict("Item with this name already exists", code="ITEM_NAME_EXISTS")
        items.append(item)
    return I.to_net(item, username)


def get_item(store, name: str, viewer: str | None = None) -> dict:
    item = store.items.lookup(name or "")
    if item is None:
        raise NotFound("Item not found")
    return I.to_net(item, viewer)


def list_items(store, username: str) -> list[dict]:
    username = username.lower()
    return [I.to_net(i) for i in store.items.scan(lambda i: str(i.get("owner", "")).lower() == username)]


def selling_items(store, limit=50) -> list[dict]:
    """Items on sale with a positive price, most recently listed first."""
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        limit = 50
    if limit <= 0:
        limit = 50
    limit = min(limit, SELLING_LIMIT)
    found = store.items.scan(lambda i: i.get("selling") and int(i.get("price", 0)) > 0)
    return [I.to_net(i) for i in reversed(found[-limit:])]


def buy_item(store, username: str, name: str, now: int | None = None) -> dict:
    """
    Buy an item that is for sale.

    The buyer pays the full price and the previous owner receives all of it.
    Locks items then users.
    """
    username = username.lower()
    now = now if now is not None else now_s()
    with store.write_many("items", "users") as (items, users):
        item = _find(store, items, name)
        if not item.get("selling"):
            raise PreconditionFailed("Item is not for sale")
        seller = str(item.get("owner", "")).lower()
        if seller == username:
            raise PreconditionFailed("You cannot buy your own item")
        buyer = users.get(username)
        if buyer is None:
            raise NotFound("User not found")
        if not U.can(buyer, "buy"):
            raise Forbidden("Your account standing does not allow purchases")
        price = int(item.get("price", 0))
        balance = U.get_credits(buyer)
        if balance < price:
            raise PreconditionFailed("Insufficient currency", code="INSUFFICIENT_FUNDS")

        item["owner"] = username
        item["selling"] = False
        item.setdefault("transfer_history", []).append(_history("purchase", username, seller, now, price))
        item["total_income"] = int(item.get("total_income", 0)) + price

        U.set_credits(buyer, money.sub(balance, price))
        U.add_transaction(buyer, {
            "type": "item_buy", "user": seller, "item": item["name"], "amount": float(price),
            "note": "item purchase", "new_total": U.get_credits(buyer),
        }, now * 1000)
        owner = users.get(seller)
        if owner is not None:
            U.set_credits(owner, money.add(U.get_credits(owner), price))
            U.add_transaction(owner, {
                "type": "item_sale", "user": username, "item": item["name"], "amount": float(price),
                "note": "item sale", "new_total": U.get_credits(owner),
            }, now * 1000)
        result = copy.deepcopy(item)

    if store.users.exists(seller):
        add_user_event(store, seller, "item_sold", {"item_name": result["name"], "buyer": username, "price": price})
    add_user_event(store, username, "item_purchased", {"item_name": result["name"], "seller": seller, "price": price})
    logger.info("[items] %s bought %s from %s for %d", username, result["name"], seller, price)
    return I.to_net(result, username)


def transfer_item(store, username: str, name: str, target: str, now: int | None = None) -> dict:
    username, target = username.lower(), (target or "").lower()
    if not target:
        raise BadInput("Target username is required")
    if target == username:
        raise BadInput("You cannot transfer an item to yourself")
    if not store.users.exists(target):
        raise NotFound("Target user not found")
    now = now if now is not None else now_s()
    with store.items.write() as items:
        item = _owned(_find(store, items, name), username, "transfer")
        item["owner"] = target
        item["selling"] = False
        item.setdefault("transfer_history", []).append(_history("transfer", target, username, now))
        item_name = item["name"]
    add_user_event(store, target, "item_received", {"item_name": item_name, "from": username, "transfer_type": "transfer"})
    return {"message": f"Item '{item_name}' transferred successfully to {target}"}


def _update(store, username: str, name: str, action: str, fn) -> dict:
    with store.items.write() as items:
        item = _owned(_find(store, items, name), username, action)
        fn(item)
        return I.to_net(copy.deepcopy(item), username)


def set_price(store, username: str, name: str, price) -> dict:
    price = _parse_price(price)
    return _update(store, username, name, "modify", lambda item: item.__setitem__("price", price))


def sell_item(store, username: str, name: str) -> dict:
    _require_seller(store, username)
    return _update(store, username, name, "sell", lambda item: item.__setitem__("selling", True))


def stop_selling(store, username: str, name: str) -> dict:
    return _update(store, username, name, "modify", lambda item: item.__setitem__("selling", False))


def update_item(store, username: str, name: str, data: dict) -> dict:
    """Owner edit of `description` and/or `private_data`."""
    if not isinstance(data, dict) or not data:
        raise BadInput("New data is required")
    description = data.get("description")
    if description is not None:
        if not isinstance(description, str):
            raise BadInput("Description must be a string")
        if len(description) > I.MAX_DESCRIPTION:
            raise BadInput(f"Description exceeds {I.MAX_DESCRIPTION} characters")

    def apply(item: dict) -> None:
        if description is not None:
            item["description"] = description
        if "private_data" in data:
            item["private_data"] = data["private_data"]

    return _update(store, username, name, "update", apply)


def delete_item(store, username: str, name: str) -> None:
    with store.items.write() as items:
        item = _owned(_find(store, items, name), username, "delete")
        items.remove(item)


def admin_set_owner(store, name: str, username: str) -> dict:
    username = (username or "").lower()
    if not store.users.exists(username):
        raise NotFound("User not found")
    with store.items.write() as items:
        item = _find(store, items, name)
        item["owner"] = username
        return I.to_net(copy.deepcopy(item), username)
