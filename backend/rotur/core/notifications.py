# rotur/core/notifications.py
"""
Outbound notifications: event bus posts and key webhooks.

Calls are handed to one worker thread through a bounded queue, so request
handlers and the subscription engine never wait on a third party and never
spawn unbounded background work. When the queue is full the message is
dropped with a warning. Delivery failures are logged and otherwise ignored:
the in-memory change that triggered them has already happened.
"""
import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

logger = logging.getLogger("uvicorn.error")

EVENT_TIMEOUT = 2.0    # event bus / websocket fan-out
WEBHOOK_TIMEOUT = 5.0  # user-configured key webhooks

_STOP = object()


@dataclass
class Outbound:
    """One queued HTTP call."""
    url: str
    payload: dict
    timeout: float
    label: str
    expected_status: tuple = (200, 201, 202, 204)
    headers: dict = field(default_factory=dict)


def event_payload(event_type: str, data: Any) -> dict:
    return {"event_type": event_type, "data": data, "from": "rotur"}


class Notifier:
    """
    Bounded fire-and-forget HTTP sender.

    Args:
        event_url: Event bus endpoint; empty disables `notify`
        websocket_url: Websocket fan-out endpoint; empty disables `broadcast`
        maxsize: Queue bound; extra messages are dropped
        client: Optional preconfigured httpx.Client (tests pass a mock transport)
    """

    def __init__(
        self,
        event_url: str = "",
        websocket_url: str = "",
        maxsize: int = 256,
        client: Optional[httpx.Client] = None,
    ):
        self.event_url = event_url
        self.websocket_url = websocket_url
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._client = client
        self._owns_client = client is None
        self._thread: Optional[threading.Thread] = None
        self.dropped = 0

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        if self._client is None:
            self._client = httpx.Client()
        self._thread = threading.Thread(target=self._run, name="notifier", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            self._queue.put(_STOP)
            self._thread.join()
        self._thread = None
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None

    # -------- producers --------
    def notify(self, event_type: str, data: Any) -> bool:
        """Post an event to the event bus (2 s timeout)."""
        if not self.event_url:
            return False
        return self._enqueue(Outbound(self.event_url, event_payload(event_type, data), EVENT_TIMEOUT, "event"))

    def broadcast(self, event_type: str, data: Any) -> bool:
        """Post an event to the websocket fan-out server (2 s timeout)."""
        if not self.websocket_url:
            return False
        return self._enqueue(Outbound(self.websocket_url, event_payload(event_type, data), EVENT_TIMEOUT, "websocket"))

    def webhook(self, url: str, payload: dict) -> bool:
        """Post a key webhook (5 s timeout)."""
        if not url:
            return False
        return self._enqueue(Outbound(url, payload, WEBHOOK_TIMEOUT, "webhook"))

    def _enqueue(self, message: Outbound) -> bool:
        try:
            self._queue.put_nowait(message)
        except queue.Full:
            self.dropped += 1
            logger.warning("[notify] queue full, dropped %s to %s", message.label, message.url)
            return False
        return True

    # -------- consumer --------
    def drain(self) -> int:
        """Send everything queued in the calling thread. Used when no worker is running."""
        sent = 0
        while True:
            try:
                message = self._queue.get_nowait()
            except queue.Empty:
                return sent
            try:
                if message is not _STOP:
                    sent += int(self.send(message))
            finally:
                self._queue.task_done()

    def send(self, message: Outbound) -> bool:
        client = self._client
        if client is None:
            client = self._client = httpx.Client()
        try:
            resp = client.post(message.url, json=message.payload, timeout=message.timeout, headers=message.headers)
        except httpx.HTTPError as exc:
            logger.warning("[notify] %s to %s failed: %s", message.label, message.url, exc)
            return False
        if resp.status_code not in message.expected_status:
            logger.warning("[notify] %s to %s returned %d", message.label, message.url, resp.status_code)
            return False
        return True

    def _run(self) -> None:
        while True:
            message = self._queue.get()
            try:
                if message is _STOP:
                    return
                self.send(message)
            finally:
                self._queue.task_done()
