# rotur/api/v1/routers/items.py
from fastapi import APIRouter, Depends

from rotur.api.v1.deps import get_current_username, get_optional_username, get_store, ok
from rotur.schemas.items import ItemIn, ItemPriceIn, ItemTransferIn, ItemUpdateIn
from rotur.services import items

router = APIRouter(prefix="/items", tags=["items"])


@router.post("")
def create_item(body: ItemIn, me: str = Depends(get_current_username), store=Depends(get_store)):
    """
    Create an item owned by the caller.

    Error codes:
        - BAD_INPUT: Missing or non-ASCII name, over-long fields, negative price
        - ITEM_NAME_EXISTS: Another item has this name (case-insensitive)
    """
    item = items.create_item(
        store, me, body.name,
        description=body.description,
        price=body.price,
        selling=body.selling,
        private_data=body.private_data,
    )
    return ok(item)


@router.get("/selling")
def selling(limit: int = 50, store=Depends(get_store)):
    return ok(items.selling_items(store, limit))


@router.get("/user/{username}")
def user_items(username: str, store=Depends(get_store)):
    return ok(items.list_items(store, username))


@router.get("/{name}")
def get_item(name: str, viewer: str | None = Depends(get_optional_username), store=Depends(get_store)):
    """Item details; `private_data` is only included for the owner."""
    return ok(items.get_item(store, name, viewer))


@router.post("/{name}/buy")
def buy(name: str, me: str = Depends(get_current_username), store=Depends(get_store)):
    """
    Buy an item that is for sale; the whole price goes to the previous owner.

    Error codes:
        - PRECONDITION_FAILED: Not for sale, or your own item
        - INSUFFICIENT_FUNDS: Balance does not cover the price
    """
    return ok(items.buy_item(store, me, name))


@router.post("/{name}/transfer")
def transfer(name: str, body: ItemTransferIn, me: str = Depends(get_current_username), store=Depends(get_store)):
    return ok(items.transfer_item(store, me, name, body.username))


@router.patch("/{name}/price")
def set_price(name: str, body: ItemPriceIn, me: str = Depends(get_current_username), store=Depends(get_store)):
    return ok(items.set_price(store, me, name, body.price))


@router.post("/{name}/sell")
def sell(name: str, me: str = Depends(get_current_username), store=Depends(get_store)):
    return ok(items.sell_item(store, me, name))


@router.post("/{name}/stop-selling")
def stop_selling(name: str, me: str = Depends(get_current_username), store=Depends(get_store)):
    return ok(items.stop_selling(store, me, name))


@router.patch("/{name}")
def update_item(name: str, body: ItemUpdateIn, me: str = Depends(get_current_username), store=Depends(get_store)):
    return ok(items.update_item(store, me, name, body.model_dump(exclude_unset=True)))


@router.delete("/{name}")
def delete_item(name: str, me: str = Depends(get_current_username), store=Depends(get_store)):
    items.delete_item(store, me, name)
    return ok({"name": name})
