"""
Unit tests for services.marriage, services.statuses, services.notes and services.link.
"""
from unittest.mock import MagicMock

import pytest

from rotur.core.errors import BadInput, NotFound, PreconditionFailed
from rotur.services import accounts, marriage, notes, social, statuses
from rotur.services.link import LinkCodes

HOUR_MS = 3600 * 1000


@pytest.fixture
def couple(make_user):
    make_user("alice")
    make_user("bob")
    return "alice", "bob"


class TestMarriage:
    """Proposal, acceptance and the ways out."""

    def test_propose_and_accept(self, store, couple):
        marriage.propose(store, "alice", "Bob", now=1000)
        assert marriage.get_status(store, "bob") == {
            "status": "proposed", "partner": "alice", "timestamp": 1000, "proposer": "alice",
        }
        assert store.events_history.lookup("bob")[-1]["type"] == "marriage_proposal"

        marriage.accept(store, "bob", now=2000)

        assert marriage.get_status(store, "alice") == {
            "status": "married", "partner": "bob", "timestamp": 2000, "proposer": "alice",
        }
        assert marriage.get_status(store, "bob")["partner"] == "alice"

    def test_single_by_default(self, store, couple):
        assert marriage.get_status(store, "alice")["status"] == "single"

    def test_proposal_rules(self, store, couple, make_user):
        make_user("carol")
        with pytest.raises(BadInput):
            marriage.propose(store, "alice", "alice")
        with pytest.raises(NotFound):
            marriage.propose(store, "alice", "ghost")
        marriage.propose(store, "alice", "bob")
        with pytest.raises(PreconditionFailed):
            marriage.propose(store, "alice", "carol")
        with pytest.raises(PreconditionFailed):
            marriage.propose(store, "carol", "bob")

    def test_blocked_proposer(self, store, couple):
        social.block(store, "bob", "alice")
        with pytest.raises(PreconditionFailed):
            marriage.propose(store, "alice", "bob")

    def test_proposer_cannot_accept_or_reject(self, store, couple):
        marriage.propose(store, "alice", "bob")
        with pytest.raises(PreconditionFailed):
            marriage.accept(store, "alice")
        with pytest.raises(PreconditionFailed):
            marriage.reject(store, "alice")

    def test_reject_and_cancel_clear_both(self, store, couple):
        marriage.propose(store, "alice", "bob")
        marriage.reject(store, "bob")
        assert "sys.marriage" not in store.users.lookup("alice")
        assert "sys.marriage" not in store.users.lookup("bob")

        marriage.propose(store, "alice", "bob")
        with pytest.raises(PreconditionFailed):
            marriage.cancel(store, "bob")
        marriage.cancel(store, "alice")
        assert marriage.get_status(store, "bob")["status"] == "single"

    def test_no_pending_proposal(self, store, couple):
        with pytest.raises(PreconditionFailed) as exc:
            marriage.accept(store, "bob")
        assert exc.value.code == "NO_PENDING_PROPOSAL"

    def test_divorce(self, store, couple):
        with pytest.raises(PreconditionFailed) as exc:
            marriage.divorce(store, "alice")
        assert exc.value.code == "NOT_MARRIED"

        marriage.propose(store, "alice", "bob")
        with pytest.raises(PreconditionFailed):
            marriage.divorce(store, "alice")
        marriage.accept(store, "bob")
        marriage.divorce(store, "bob")
        assert marriage.get_status(store, "alice")["status"] == "single"
        assert marriage.get_status(store, "bob")["status"] == "single"

    def test_deleting_partner_frees_the_other(self, store, couple):
        marriage.propose(store, "alice", "bob")
        marriage.accept(store, "bob")
        accounts.delete_user(store, "bob")
        assert marriage.get_status(store, "alice")["status"] == "single"


class TestStatuses:
    """Simple and activity statuses with a 24 hour lifetime."""

    def test_simple_status(self, store, make_user):
        make_user("alice")
        notifier = MagicMock()
        result = statuses.update_status(store, "alice", content="  coding  ", notifier=notifier, now=1000)
        assert result["status"] == {"type": "simple", "created": 1000, "expires": 1000 + 24 * HOUR_MS, "content": "coding"}
        notifier.broadcast.assert_called_once_with(
            "user_account_update", {"username": "alice", "key": "status", "value": result["status"]},
        )

        shown = statuses.get_status(store, "Alice", now=1000 + HOUR_MS)
        assert shown["status"]["content"] == "coding"
        assert shown["time_remaining_ms"] == 23 * HOUR_MS

    def test_activity_status(self, store, make_user):
        make_user("alice")
        result = statuses.update_status(
            store, "alice",
            activity_name="Chess",
            activity_description="ranked",
            activity_image="https://img.example/chess.png",
            now=0,
        )
        assert result["status"]["type"] == "activity"
        assert result["status"]["activity"] == {
            "name": "Chess", "description": "ranked", "image": "https://img.example/chess.png",
        }
        assert "content" not in result["status"]

    @pytest.mark.parametrize("kwargs", [
        {},
        {"content": "hi", "activity_name": "Chess"},
        {"content": "x" * 251},
        {"activity_name": "x" * 101},
        {"activity_name": "Chess", "activity_description": "x" * 501},
        {"activity_name": "Chess", "activity_image": "ftp://img"},
    ])
    def test_invalid_status(self, store, make_user, kwargs):
        make_user("alice")
        with pytest.raises(BadInput):
            statuses.update_status(store, "alice", **kwargs)

    def test_expired_status_is_gone(self, store, make_user):
        make_user("alice")
        statuses.update_status(store, "alice", content="brb", now=0)
        with pytest.raises(NotFound):
            statuses.get_status(store, "alice", now=24 * HOUR_MS)
        assert store.statuses.lookup("alice") is None

    def test_cleanup_removes_only_expired(self, store, make_user):
        make_user("alice")
        make_user("bob")
        statuses.update_status(store, "alice", content="old", now=0)
        statuses.update_status(store, "bob", content="new", now=12 * HOUR_MS)
        notifier = MagicMock()

        assert statuses.cleanup_expired(store, notifier=notifier, now=25 * HOUR_MS) == 1

        assert store.statuses.lookup("alice") is None
        assert store.statuses.lookup("bob")["content"] == "new"
        notifier.broadcast.assert_called_once_with(
            "user_account_update", {"username": "alice", "key": "status", "value": None},
        )

    def test_clear(self, store, make_user):
        make_user("alice")
        statuses.update_status(store, "alice", content="brb")
        statuses.clear_status(store, "alice")
        with pytest.raises(NotFound):
            statuses.get_status(store, "alice")


class TestNotes:
    """Private notes about other accounts."""

    def test_set_list_remove(self, store, couple):
        notes.set_note(store, "alice", "Bob", "met at the meetup")
        assert notes.notes_of(store, "alice") == {"bob": "met at the meetup"}
        bob_id = store.users.lookup("bob")["sys.id"]
        assert store.users.lookup("alice")["sys.notes"] == {bob_id: "met at the meetup"}

        notes.remove_note(store, "alice", "bob")
        assert notes.notes_of(store, "alice") == {}

    def test_notes_are_private(self, store, couple):
        notes.set_note(store, "alice", "bob", "owes me 5")
        assert "sys.notes" not in accounts.get_user(store, "alice", viewer="bob")
        assert "sys.notes" in accounts.get_user(store, "alice", viewer="alice")

    def test_note_rules(self, store, couple):
        with pytest.raises(BadInput):
            notes.set_note(store, "alice", "bob", "")
        with pytest.raises(BadInput):
            notes.set_note(store, "alice", "bob", "x" * 301)
        with pytest.raises(NotFound):
            notes.set_note(store, "alice", "ghost", "hi")

    def test_deleted_accounts_drop_out(self, store, couple):
        notes.set_note(store, "alice", "bob", "hi")
        accounts.delete_user(store, "bob")
        assert notes.notes_of(store, "alice") == {}


class TestLinkCodes:
    """Passing a key to a second device."""

    def test_link_and_claim_once(self):
        links = LinkCodes(ttl=600)
        code = links.generate(now=0)
        assert len(code) == 6
        assert code == code.upper()
        assert links.is_linked(code, now=1) is False

        links.link(code.lower(), "secret-key", now=2)
        assert links.is_linked(code, now=3) is True
        assert links.claim(code, now=4) == "secret-key"
        with pytest.raises(NotFound):
            links.claim(code, now=5)

    def test_unknown_or_unlinked_code(self):
        links = LinkCodes()
        with pytest.raises(NotFound):
            links.link("ZZZZZZ", "secret-key")
        code = links.generate()
        with pytest.raises(NotFound):
            links.claim(code)

    def test_codes_expire(self):
        links = LinkCodes(ttl=600)
        code = links.generate(now=0)
        links.link(code, "secret-key", now=10)
        assert links.is_linked(code, now=600) is False
        with pytest.raises(NotFound):
            links.claim(code, now=601)
