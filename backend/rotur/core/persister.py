# rotur/core/persister.py
"""
Snapshot persister.

Every mutation schedules its collection here. A single worker thread drains a
bounded queue and writes each scheduled collection with `atomic_write`:
the snapshot goes to `<path>.tmp`, is fsynced, then renamed over `<path>`.
A collection that is already queued is not queued again, so a burst of
mutations shares one flush. Failures are logged and never reach the caller
that mutated the collection; the previous file stays authoritative.
"""
import contextlib
import logging
import os
import queue
import threading

logger = logging.getLogger("uvicorn.error")

_STOP = object()


def atomic_write(path: str, data: bytes) -> None:
    """Write `data` to `path` so readers see either the old file or the new one, never a mix."""
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    tmp_path = path + ".tmp"
    try:
        with open(tmp_path, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, path)
    except OSError:
        with contextlib.suppress(OSError):
            os.remove(tmp_path)
        raise


class SnapshotPersister:
    """Coalescing background writer for collection snapshots."""

    def __init__(self, maxsize: int = 64):
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._pending: set[str] = set()
        self._pending_lock = threading.Lock()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._thread = threading.Thread(target=self._run, name="snapshot-persister", daemon=True)
        self._thread.start()

    def schedule(self, collection) -> None:
        """Queue `collection` for a flush unless it is already waiting. Never blocks on disk."""
        with self._pending_lock:
            if collection.name in self._pending:
                return
            self._pending.add(collection.name)
        # Coalescing keeps at most one entry per collection in the queue.
        self._queue.put(collection)

    def flush(self) -> None:
        """Block until every scheduled snapshot has been written."""
        if self.running:
            self._queue.join()
            return
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return
            try:
                if item is not _STOP:
                    self._write(item)
            finally:
                self._queue.task_done()

    def stop(self) -> None:
        if not self.running:
            self.flush()
            return
        self._queue.put(_STOP)
        self._thread.join()
        self._thread = None

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._write(item)
            finally:
                self._queue.task_done()

    def _write(self, collection) -> None:
        # Mutations landing after this point schedule a fresh flush.
        with self._pending_lock:
            self._pending.discard(collection.name)
        try:
            collection.save()
        except Exception:
            logger.exception("[persist] unexpected failure saving %s", collection.name)
