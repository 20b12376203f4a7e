"""
Unit tests for core.rwlock.
"""
import threading
import time

from rotur.core.rwlock import RWLock


class TestRWLock:
    """Tests for shared readers and exclusive writers."""

    def test_readers_share(self):
        """A second reader gets in while the first holds the lock."""
        lock = RWLock()
        entered = threading.Event()

        def reader():
            with lock.read():
                entered.set()

        with lock.read():
            t = threading.Thread(target=reader)
            t.start()
            assert entered.wait(1.0)
        t.join()

    def test_writer_excludes_readers(self):
        """A writer waits for the reader to leave."""
        lock = RWLock()
        entered = threading.Event()

        def writer():
            with lock.write():
                entered.set()

        lock.acquire_read()
        t = threading.Thread(target=writer)
        t.start()
        assert not entered.wait(0.2)
        lock.release_read()
        assert entered.wait(1.0)
        t.join()

    def test_waiting_writer_blocks_new_readers(self):
        """Once a writer is waiting, later readers queue behind it."""
        lock = RWLock()
        order = []

        def writer():
            with lock.write():
                order.append("writer")

        def reader():
            with lock.read():
                order.append("reader")

        lock.acquire_read()
        w = threading.Thread(target=writer)
        w.start()
        time.sleep(0.1)
        r = threading.Thread(target=reader)
        r.start()
        time.sleep(0.1)
        assert order == []
        lock.release_read()
        w.join(1.0)
        r.join(1.0)
        assert order == ["writer", "reader"]
