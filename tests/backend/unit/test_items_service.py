"""
Unit tests for services.items.
Creation rules, the purchase flow and owner-only management.
"""
import pytest

from rotur.core.errors import BadInput, Conflict, Forbidden, NotFound, PreconditionFailed
from rotur.services import items, standing


@pytest.fixture
def eve_item(store, make_user):
    """Eve sells "Lamp" for 50."""
    make_user("eve")
    items.create_item(store, "eve", "Lamp", description="bright", price=50, selling=True, private_data="serial-1")
    return "Lamp"


class TestCreate:
    """Tests for create_item()."""

    def test_conflict_is_case_insensitive(self, store, make_user, eve_item):
        with pytest.raises(Conflict):
            items.create_item(store, "eve", "LAMP")

    def test_name_rules(self, store, make_user):
        make_user("eve")
        with pytest.raises(BadInput):
            items.create_item(store, "eve", "")
        with pytest.raises(BadInput):
            items.create_item(store, "eve", "Lampé")
        with pytest.raises(BadInput):
            items.create_item(store, "eve", "Lamp", price=-1)

    def test_creation_history(self, store, eve_item):
        item = items.get_item(store, "lamp", viewer="eve")
        assert item["author"] == "eve"
        assert item["owner"] == "eve"
        assert item["transfer_history"][0]["type"] == "creation"

    def test_private_data_only_for_owner(self, store, eve_item):
        assert items.get_item(store, "Lamp", viewer="eve")["private_data"] == "serial-1"
        assert "private_data" not in items.get_item(store, "Lamp", viewer="frank")
        assert "private_data" not in items.get_item(store, "Lamp")


class TestBuy:
    """Tests for buy_item()."""

    def test_purchase(self, store, make_user, eve_item):
        """Frank pays 50 of his 60; Eve receives all 50."""
        make_user("frank", credits=60)
        bought = items.buy_item(store, "frank", "lamp", now=1_700_000_000)

        assert bought["owner"] == "frank"
        assert bought["selling"] is False
        assert bought["private_data"] == "serial-1"
        assert store.users.lookup("frank")["sys.currency"] == 10.0
        assert store.users.lookup("eve")["sys.currency"] == 50.0
        record = bought["transfer_history"][-1]
        assert record == {"from": "eve", "to": "frank", "timestamp": 1_700_000_000, "type": "purchase", "price": 50}
        assert store.users.lookup("frank")["sys.transactions"][0]["time"] == 1_700_000_000_000
        assert store.events_history.lookup("eve")[-1]["type"] == "item_sold"

    def test_not_for_sale(self, store, make_user, eve_item):
        make_user("frank", credits=60)
        items.stop_selling(store, "eve", "Lamp")
        with pytest.raises(PreconditionFailed):
            items.buy_item(store, "frank", "Lamp")

    def test_own_item(self, store, eve_item):
        with pytest.raises(PreconditionFailed):
            items.buy_item(store, "eve", "Lamp")

    def test_insufficient_funds(self, store, make_user, eve_item):
        make_user("frank", credits=49)
        with pytest.raises(PreconditionFailed):
            items.buy_item(store, "frank", "Lamp")
        assert items.get_item(store, "Lamp")["owner"] == "eve"

    def test_unknown_item(self, store, make_user):
        make_user("frank")
        with pytest.raises(NotFound):
            items.buy_item(store, "frank", "nothing")


class TestManagement:
    """Owner-only operations."""

    def test_transfer(self, store, make_user, eve_item):
        make_user("frank")
        with pytest.raises(Forbidden):
            items.transfer_item(store, "frank", "Lamp", "eve")
        items.transfer_item(store, "eve", "Lamp", "frank")
        item = items.get_item(store, "Lamp")
        assert item["owner"] == "frank"
        assert item["selling"] is False
        assert item["transfer_history"][-1]["type"] == "transfer"

    def test_transfer_to_unknown_user(self, store, eve_item):
        with pytest.raises(NotFound):
            items.transfer_item(store, "eve", "Lamp", "ghost")

    def test_price_and_listing(self, store, make_user, eve_item):
        assert items.set_price(store, "eve", "Lamp", "75")["price"] == 75
        with pytest.raises(BadInput):
            items.set_price(store, "eve", "Lamp", "cheap")
        assert [i["name"] for i in items.selling_items(store)] == ["Lamp"]
        items.stop_selling(store, "eve", "Lamp")
        assert items.selling_items(store) == []
        items.sell_item(store, "eve", "Lamp")
        assert len(items.list_items(store, "eve")) == 1

    def test_update_and_delete(self, store, make_user, eve_item):
        make_user("frank")
        updated = items.update_item(store, "eve", "Lamp", {"description": "dim", "private_data": None})
        assert updated["description"] == "dim"
        assert updated["private_data"] is None
        with pytest.raises(Forbidden):
            items.delete_item(store, "frank", "Lamp")
        items.delete_item(store, "eve", "Lamp")
        with pytest.raises(NotFound):
            items.get_item(store, "Lamp")

    def test_admin_set_owner(self, store, make_user, eve_item):
        make_user("frank")
        assert items.admin_set_owner(store, "lamp", "Frank")["owner"] == "frank"


class TestSellerStanding:
    """Listing an item for sale requires good standing."""

    def test_warning_cannot_list(self, store, make_user, eve_item):
        items.stop_selling(store, "eve", "Lamp")
        standing.set_standing(store, "eve", "warning", "spam")
        with pytest.raises(Forbidden):
            items.sell_item(store, "eve", "Lamp")
        assert items.get_item(store, "Lamp")["selling"] is False

    def test_warning_cannot_create_for_sale(self, store, make_user):
        make_user("eve")
        standing.set_standing(store, "eve", "warning", "spam")
        with pytest.raises(Forbidden):
            items.create_item(store, "eve", "Lamp", price=5, selling=True)
        with pytest.raises(NotFound):
            items.get_item(store, "Lamp")
        assert items.create_item(store, "eve", "Lamp", price=5)["selling"] is False

    def test_stop_selling_still_allowed(self, store, make_user, eve_item):
        standing.set_standing(store, "eve", "suspended", "abuse")
        assert items.stop_selling(store, "eve", "Lamp")["selling"] is False
