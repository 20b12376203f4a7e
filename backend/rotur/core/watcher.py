# rotur/core/watcher.py
"""
Hot reload of the users file.

The file is polled for modification time. A change that we did not write
ourselves is given a short debounce (editors and deploy scripts often write
in several steps) and then reloaded. A failed reload keeps the in-memory
users; `Collection.load` logs why.

Whether a change is our own snapshot is decided by
`Collection.changed_on_disk`, which shares the lock `Collection.save` holds
while it renames the snapshot and records its mtime.
"""
import asyncio
import logging
import os

from starlette.concurrency import run_in_threadpool

logger = logging.getLogger("uvicorn.error")


def _mtime_ns(path: str) -> int | None:
    try:
        return os.stat(path).st_mtime_ns
    except OSError:
        return None


class FileWatcher:
    """Poll one collection's file and reload it on external changes."""

    def __init__(self, collection, interval: float = 0.5, debounce: float = 0.5):
        self.collection = collection
        self.interval = interval
        self.debounce = debounce
        self._last_seen = _mtime_ns(collection.path)

    def changed(self) -> bool:
        """True when the file's mtime moved and the change was not our own snapshot."""
        current = _mtime_ns(self.collection.path)
        if current is None or current == self._last_seen:
            return False
        self._last_seen = current
        return self.collection.changed_on_disk()

    async def poll_once(self) -> bool:
        if not await run_in_threadpool(self.changed):
            return False
        await asyncio.sleep(self.debounce)
        self._last_seen = _mtime_ns(self.collection.path)
        # A snapshot of ours may have replaced the outside edit during the debounce
        if not await run_in_threadpool(self.collection.changed_on_disk):
            return False
        ok = await run_in_threadpool(self.collection.load)
        if ok:
            logger.info("[watcher] reloaded %s after external change", self.collection.name)
        return ok

    async def run(self) -> None:
        logger.info("[watcher] watching %s every %.1fs", self.collection.path, self.interval)
        while True:
            await asyncio.sleep(self.interval)
            await self.poll_once()
