"""
Unit tests for core.notifications.Notifier and core.watcher.FileWatcher.
"""
import json
import os

import httpx
import pytest

from rotur.core.notifications import Notifier
from rotur.core.watcher import FileWatcher


def _client(status: int = 200):
    received = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append((str(request.url), json.loads(request.content)))
        return httpx.Response(status)

    return httpx.Client(transport=httpx.MockTransport(handler)), received


class TestNotifier:
    """Tests for the bounded outbound queue."""

    def test_notify_posts_event_payload(self):
        """Events go to the event bus wrapped as {event_type, data, from}."""
        client, received = _client()
        notifier = Notifier(event_url="http://events.test/", client=client)
        assert notifier.notify("sys.key_lost", {"username": "bob"}) is True
        assert notifier.drain() == 1
        assert received == [("http://events.test/", {"event_type": "sys.key_lost", "data": {"username": "bob"}, "from": "rotur"})]

    def test_empty_url_disables(self):
        """Nothing is queued when the target URL is not configured."""
        notifier = Notifier()
        assert notifier.notify("x", {}) is False
        assert notifier.broadcast("x", {}) is False
        assert notifier.webhook("", {}) is False

    def test_full_queue_drops(self):
        """Messages beyond the queue bound are dropped and counted."""
        client, _ = _client()
        notifier = Notifier(event_url="http://events.test/", maxsize=1, client=client)
        assert notifier.notify("a", {}) is True
        assert notifier.notify("b", {}) is False
        assert notifier.dropped == 1

    def test_failure_is_not_raised(self):
        """A non-2xx answer is logged and reported as unsent."""
        client, received = _client(status=500)
        notifier = Notifier(client=client)
        notifier.webhook("http://hook.test/", {"content": "hi"})
        assert notifier.drain() == 0
        assert len(received) == 1

    def test_worker_thread_delivers(self):
        """start/stop runs a worker that empties the queue."""
        client, received = _client()
        notifier = Notifier(websocket_url="http://ws.test/", client=client)
        notifier.start()
        notifier.broadcast("new_post", {"id": "p1"})
        notifier.stop()
        assert received[0][1]["event_type"] == "new_post"


class TestFileWatcher:
    """Tests for users-file hot reload."""

    @pytest.mark.asyncio
    async def test_external_change_is_reloaded(self, store, test_settings, make_user):
        """An edit made by someone else is picked up."""
        make_user("alice")
        store.flush()
        watcher = FileWatcher(store.users, interval=0, debounce=0)
        assert watcher.changed() is False

        path = test_settings.users_file_path
        docs = json.loads(open(path).read())
        docs.append({"username": "zed", "key": "k" * 32})
        with open(path, "w") as fh:
            json.dump(docs, fh)
        later = store.users.disk_mtime_ns + 5_000_000_000
        os.utime(path, ns=(later, later))

        assert await watcher.poll_once() is True
        assert store.users.exists("zed")
        assert store.users.username_for_token("k" * 32) == "zed"

    def test_own_writes_are_ignored(self, store, make_user):
        """Snapshots written by the store itself do not trigger a reload."""
        make_user("alice")
        store.flush()
        watcher = FileWatcher(store.users)
        make_user("bob")
        store.flush()
        assert watcher.changed() is False
