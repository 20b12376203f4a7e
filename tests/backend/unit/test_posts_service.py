"""
Unit tests for services.posts.
Post limits, replies, likes, the repost rules and the feeds.
"""
from unittest.mock import MagicMock

import pytest

from rotur.core.errors import BadInput, Forbidden, NotFound, PreconditionFailed
from rotur.services import posts, social, standing, systems


class TestCreate:
    """Tests for create_post()."""

    def test_content_limits(self, store, make_user):
        make_user("alice")
        with pytest.raises(BadInput):
            posts.create_post(store, "alice", "")
        with pytest.raises(BadInput):
            posts.create_post(store, "alice", "x" * 301)
        assert posts.create_post(store, "alice", "x" * 300)["user"] == "alice"

    def test_premium_limit(self, store, make_user):
        make_user("alice")
        posts.create_post(store, "alice", "x" * 600, premium=True)
        with pytest.raises(BadInput):
            posts.create_post(store, "alice", "x" * 601, premium=True)

    def test_attachment_must_be_url(self, store, make_user):
        make_user("alice")
        with pytest.raises(BadInput):
            posts.create_post(store, "alice", "hi", attachment="not a url")
        post = posts.create_post(store, "alice", "hi", attachment="https://img.test/cat.png")
        assert post["attachment"] == "https://img.test/cat.png"

    def test_os_must_be_registered(self, store, make_user):
        make_user("alice")
        with pytest.raises(BadInput):
            posts.create_post(store, "alice", "hi", os_name="originOS")
        systems.set_system(store, "originOS", {"owner": "mist"})
        assert posts.create_post(store, "alice", "hi", os_name="originOS")["os"] == "originOS"

    def test_standing_gate(self, store, make_user):
        """Accounts on a warning may not post."""
        make_user("alice")
        standing.set_standing(store, "alice", "warning", "spam")
        with pytest.raises(Forbidden):
            posts.create_post(store, "alice", "hi")

    def test_public_posts_are_broadcast(self, store, make_user):
        make_user("alice")
        notifier = MagicMock()
        posts.create_post(store, "alice", "hello", notifier=notifier)
        posts.create_post(store, "alice", "quiet", profile_only=True, notifier=notifier)
        notifier.broadcast.assert_called_once()
        assert notifier.broadcast.call_args.args[0] == "new_post"


class TestInteractions:
    """Replies, ratings, reposts, pins and deletes."""

    def test_reply_records_event_for_author(self, store, make_user):
        make_user("alice")
        make_user("bob")
        post = posts.create_post(store, "alice", "hello")
        reply = posts.reply_to_post(store, "bob", post["id"], "hi back")

        assert posts.get_post(store, post["id"])["replies"][0]["id"] == reply["id"]
        event = store.events_history.lookup("alice")[-1]
        assert event["type"] == "reply"
        assert event["data"]["user"] == "bob"

    def test_reply_to_missing_post(self, store, make_user):
        make_user("bob")
        with pytest.raises(NotFound):
            posts.reply_to_post(store, "bob", "missing", "hi")

    def test_rate(self, store, make_user):
        make_user("alice")
        post = posts.create_post(store, "alice", "hello")
        assert posts.rate_post(store, "bob", post["id"], 1) == ["bob"]
        assert posts.rate_post(store, "bob", post["id"], "1") == ["bob"]
        assert posts.rate_post(store, "bob", post["id"], 0) == []
        with pytest.raises(BadInput):
            posts.rate_post(store, "bob", post["id"], 5)

    def test_repost_rules(self, store, make_user):
        """Reposts of reposts and of profile-only posts are refused."""
        for name in ("alice", "bob", "carol", "dave"):
            make_user(name)
        p1 = posts.create_post(store, "alice", "original")
        private = posts.create_post(store, "alice", "mine", profile_only=True)

        repost = posts.repost(store, "bob", p1["id"])
        assert repost["is_repost"] is True
        assert repost["profile_only"] is True
        assert repost["original_post"]["id"] == p1["id"]

        with pytest.raises(PreconditionFailed) as exc:
            posts.repost(store, "carol", repost["id"])
        assert exc.value.message == "Cannot repost a repost"

        with pytest.raises(PreconditionFailed):
            posts.repost(store, "dave", private["id"])

        assert store.events_history.lookup("alice")[-1]["type"] == "repost"

    def test_pin_own_posts_only(self, store, make_user):
        make_user("alice")
        make_user("bob")
        post = posts.create_post(store, "alice", "hello")
        with pytest.raises(Forbidden):
            posts.pin_post(store, "bob", post["id"])
        posts.pin_post(store, "alice", post["id"])
        assert posts.get_post(store, post["id"])["pinned"] is True
        posts.unpin_post(store, "alice", post["id"])
        assert posts.get_post(store, post["id"])["pinned"] is False

    def test_delete_permission(self, store, make_user):
        make_user("alice")
        make_user("bob")
        first = posts.create_post(store, "alice", "one")
        second = posts.create_post(store, "alice", "two")
        with pytest.raises(Forbidden):
            posts.delete_post(store, "bob", first["id"])
        posts.delete_post(store, "alice", first["id"])
        posts.delete_post(store, "admin", second["id"], admin=True)
        with pytest.raises(NotFound):
            posts.get_post(store, first["id"])
        assert store.posts.snapshot() == []


class TestFeeds:
    """Read-side views."""

    def test_feed_newest_first_without_profile_only(self, store, make_user):
        make_user("alice")
        posts.create_post(store, "alice", "old", now=1_000)
        posts.create_post(store, "alice", "hidden", profile_only=True, now=2_000)
        posts.create_post(store, "alice", "new", now=3_000)
        assert [p["content"] for p in posts.feed(store)] == ["new", "old"]
        assert [p["content"] for p in posts.feed(store, offset=1)] == ["old"]

    def test_profile_pinned_first(self, store, make_user):
        make_user("alice")
        pinned = posts.create_post(store, "alice", "pinned", now=1_000)
        posts.create_post(store, "alice", "hidden", profile_only=True, now=2_000)
        posts.create_post(store, "alice", "latest", now=3_000)
        posts.pin_post(store, "alice", pinned["id"])
        assert [p["content"] for p in posts.user_posts(store, "Alice")] == ["pinned", "latest", "hidden"]

    def test_following_feed(self, store, make_user):
        for name in ("alice", "bob", "carol"):
            make_user(name)
        social.follow(store, "carol", "alice")
        posts.create_post(store, "alice", "from alice")
        posts.create_post(store, "bob", "from bob")
        assert [p["user"] for p in posts.following_feed(store, "carol")] == ["alice"]

    def test_top_posts_window(self, store, make_user):
        make_user("alice")
        now = 100 * 3600 * 1000
        old = posts.create_post(store, "alice", "old", now=now - 48 * 3600 * 1000)
        quiet = posts.create_post(store, "alice", "quiet", now=now - 1000)
        loved = posts.create_post(store, "alice", "loved", now=now - 2000)
        for voter in ("a", "b"):
            posts.rate_post(store, voter, loved["id"], 1)
        posts.rate_post(store, "c", old["id"], 1)
        top = posts.top_posts(store, time_period=24, now=now)
        assert [p["id"] for p in top] == [loved["id"], quiet["id"]]

    def test_search(self, store, make_user):
        make_user("alice")
        posts.create_post(store, "alice", "Hello World")
        posts.create_post(store, "alice", "goodbye")
        assert [p["content"] for p in posts.search_posts(store, "hello")] == ["Hello World"]
        with pytest.raises(BadInput):
            posts.search_posts(store, "")
