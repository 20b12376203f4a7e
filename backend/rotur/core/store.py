# rotur/core/store.py
"""
State store.

Every collection (users, posts, items, keys, followers, groups, systems,
events history, daily claims, statuses) lives in memory for the life of the
process, guarded by its own reader/writer lock, and is mirrored to one JSON
file.

Rules for callers:
  - read under `collection.read()`, mutate under `collection.write()`;
    never perform blocking I/O inside either block
  - lookups and scans return deep copies, safe to use after the lock is gone
  - when a change spans collections, take them with `Store.write_many`, which
    always acquires in LOCK_ORDER (keys before users, never the reverse)
  - every successful write schedules a snapshot; persistence failures are
    logged and never raised

Snapshots deep-copy the whole collection under the read lock. The data is
small enough that this is cheaper than copy-on-write; a larger deployment
would need structural sharing here.
"""
import copy
import json
import logging
import os
import threading
from contextlib import ExitStack, contextmanager
from typing import Any, Callable, Iterable, Optional

from rotur.core.persister import SnapshotPersister, atomic_write
from rotur.core.rwlock import RWLock

logger = logging.getLogger("uvicorn.error")

# Acquisition order for multi-collection mutations.
LOCK_ORDER = (
    "keys",
    "items",
    "groups",
    "posts",
    "followers",
    "daily_claims",
    "users",
    "systems",
    "events_history",
    "statuses",
)

# Startup load order.
LOAD_ORDER = (
    "users",
    "followers",
    "posts",
    "items",
    "keys",
    "systems",
    "events_history",
    "groups",
    "daily_claims",
    "statuses",
)


class Collection:
    """One in-memory collection plus its on-disk snapshot."""

    def __init__(self, name: str, path: str, factory: Callable[[], Any], compact: bool = False):
        self.name = name
        self.path = path
        self.factory = factory
        self.compact = compact
        self.lock = RWLock()
        self.data = factory()
        self.persister: Optional[SnapshotPersister] = None
        self.disk_mtime_ns: Optional[int] = None
        self._save_lock = threading.Lock()

    # ---------- hooks for collections whose memory shape differs from disk ----------
    def decode(self, raw: Any) -> Any:
        expected = type(self.factory())
        if not isinstance(raw, expected):
            raise ValueError(f"expected {expected.__name__}, got {type(raw).__name__}")
        return raw

    def encode(self, data: Any) -> Any:
        return data

    def reindex(self) -> None:
        """Called under the write lock after the data changed."""

    # ---------- load ----------
    def load(self) -> bool:
        """
        Load the collection from disk.

        A missing file resets the collection to empty. An unreadable, empty or
        malformed file leaves the in-memory state untouched and logs an error.

        Returns:
            True when the in-memory state now mirrors the disk.
        """
        if not os.path.exists(self.path):
            with self.lock.write():
                self.data = self.factory()
                self.reindex()
            logger.info("[store] %s: no file at %s, starting empty", self.name, self.path)
            return True
        try:
            mtime_ns = os.stat(self.path).st_mtime_ns
            with open(self.path, "rb") as fh:
                raw = fh.read()
        except OSError as exc:
            logger.error("[store] %s: cannot read %s: %s", self.name, self.path, exc)
            return False
        if not raw.strip():
            logger.error("[store] %s: %s is empty, keeping in-memory state", self.name, self.path)
            return False
        try:
            data = self.decode(json.loads(raw))
        except (ValueError, TypeError, AttributeError, KeyError) as exc:
            logger.error("[store] %s: malformed %s: %s", self.name, self.path, exc)
            return False
        with self.lock.write():
            self.data = data
            self.reindex()
        self.disk_mtime_ns = mtime_ns
        logger.info("[store] %s: loaded %d records", self.name, len(data))
        return True

    # ---------- readers ----------
    @contextmanager
    def read(self):
        with self.lock.read():
            yield self.data

    def snapshot(self) -> Any:
        with self.lock.read():
            return copy.deepcopy(self.data)

    def lookup(self, ident) -> Optional[Any]:
        with self.lock.read():
            found = self.find(self.data, ident)
            return copy.deepcopy(found) if found is not None else None

    def scan(self, predicate: Callable[[Any], bool]) -> list:
        with self.lock.read():
            return [copy.deepcopy(v) for v in self.values(self.data) if predicate(v)]

    def find(self, data, ident):
        """Locate a record by identity inside already-locked data."""
        if isinstance(data, dict):
            return data.get(ident)
        raise TypeError(f"{self.name} has no identity lookup")

    @staticmethod
    def values(data) -> Iterable:
        return data.values() if isinstance(data, dict) else data

    # ---------- writers ----------
    @contextmanager
    def write(self):
        """Exclusive critical section; schedules a snapshot when the block exits cleanly."""
        with self.lock.write():
            try:
                yield self.data
            finally:
                self.reindex()
        self.schedule()

    def mutate(self, fn: Callable[[Any], Any]) -> Any:
        with self.write() as data:
            return fn(data)

    def replace(self, data: Any) -> None:
        with self.lock.write():
            self.data = data
            self.reindex()
        self.schedule()

    # ---------- persistence ----------
    def bind(self, persister: SnapshotPersister) -> None:
        self.persister = persister

    def schedule(self) -> None:
        if self.persister is not None:
            self.persister.schedule(self)

    def serialize(self, snapshot: Any) -> bytes:
        payload = self.encode(snapshot)
        if self.compact:
            return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        return json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8")

    def changed_on_disk(self) -> bool:
        """
        True when the file differs from our last load or snapshot.

        Taken under the save lock, so a snapshot that has been renamed into
        place but not yet recorded is never seen as an outside edit.
        """
        with self._save_lock:
            try:
                current = os.stat(self.path).st_mtime_ns
            except OSError:
                return False
            return current != self.disk_mtime_ns

    def save(self) -> bool:
        """Write a point-in-time snapshot. One save per collection runs at a time."""
        with self._save_lock:
            snapshot = self.snapshot()
            try:
                data = self.serialize(snapshot)
            except (TypeError, ValueError) as exc:
                logger.error("[persist] %s: cannot serialize: %s", self.name, exc)
                return False
            try:
                atomic_write(self.path, data)
                self.disk_mtime_ns = os.stat(self.path).st_mtime_ns
            except OSError as exc:
                logger.error("[persist] %s: write to %s failed: %s", self.name, self.path, exc)
                return False
        return True


class ListCollection(Collection):
    """List of records identified by one field (posts by id, keys by key, items by name)."""

    def __init__(self, name: str, path: str, id_field: str, casefold: bool = False):
        super().__init__(name, path, list)
        self.id_field = id_field
        self.casefold = casefold

    def _matches(self, record: dict, ident: str) -> bool:
        value = record.get(self.id_field)
        if self.casefold and isinstance(value, str) and isinstance(ident, str):
            return value.lower() == ident.lower()
        return value == ident

    def find(self, data, ident):
        for record in data:
            if self._matches(record, ident):
                return record
        return None

    def index_of(self, data, ident) -> int:
        for i, record in enumerate(data):
            if self._matches(record, ident):
                return i
        return -1


class UserCollection(Collection):
    """
    Users keyed by lowercased username.

    On disk the file is a compact JSON list of user documents (it is by far
    the largest collection). In memory it is a dict so lookups by name are
    O(1); secondary indexes by `sys.id`, `key` token and email are rebuilt
    after every write. Callers must not rely on ordinal positions.
    """

    def __init__(self, name: str, path: str):
        super().__init__(name, path, dict, compact=True)
        self._by_id: dict[str, str] = {}
        self._by_token: dict[str, str] = {}
        self._by_email: dict[str, str] = {}

    def decode(self, raw: Any) -> dict:
        if not isinstance(raw, list):
            raise ValueError("users file must hold a list")
        users: dict[str, dict] = {}
        for doc in raw:
            if not isinstance(doc, dict):
                continue
            username = str(doc.get("username", "")).lower()
            if not username:
                continue
            users[username] = doc
        return users

    def encode(self, data: dict) -> list:
        return list(data.values())

    def reindex(self) -> None:
        by_id, by_token, by_email = {}, {}, {}
        for username, doc in self.data.items():
            if doc.get("sys.id"):
                by_id[str(doc["sys.id"])] = username
            if doc.get("key"):
                by_token[str(doc["key"])] = username
            if doc.get("email"):
                by_email[str(doc["email"]).lower()] = username
        self._by_id, self._by_token, self._by_email = by_id, by_token, by_email

    def find(self, data, ident):
        return data.get(str(ident).lower())

    def username_for_token(self, token: str) -> Optional[str]:
        with self.lock.read():
            return self._by_token.get(token)

    def username_for_id(self, user_id: str) -> Optional[str]:
        with self.lock.read():
            return self._by_id.get(user_id)

    def email_owner(self, data, email: str) -> Optional[str]:
        """Case-insensitive email lookup; caller holds the lock."""
        return self._by_email.get(email.lower())

    def exists(self, username: str) -> bool:
        with self.lock.read():
            return str(username).lower() in self.data


class Store:
    """
    Owner of every collection. Created once by the application factory and
    handed to services explicitly; nothing here is a module-level global.
    """

    def __init__(self, settings, persister: Optional[SnapshotPersister] = None):
        self.settings = settings
        self.persister = persister or SnapshotPersister()
        self.users = UserCollection("users", settings.users_file_path)
        self.posts = ListCollection("posts", settings.posts_file_path, "id")
        self.items = ListCollection("items", settings.items_file_path, "name", casefold=True)
        self.keys = ListCollection("keys", settings.keys_file_path, "key")
        self.followers = Collection("followers", settings.followers_file_path, dict)
        self.groups = Collection("groups", settings.groups_file_path, dict)
        self.systems = Collection("systems", settings.systems_file_path, dict)
        self.events_history = Collection("events_history", settings.events_history_path, dict)
        self.daily_claims = Collection("daily_claims", settings.daily_claims_file_path, dict)
        self.statuses = Collection("statuses", settings.statuses_file_path, dict)
        for collection in self.collections():
            collection.bind(self.persister)

    def collection(self, name: str) -> Collection:
        return getattr(self, name)

    def collections(self) -> list[Collection]:
        return [self.collection(name) for name in LOAD_ORDER]

    def load_all(self) -> None:
        for collection in self.collections():
            collection.load()

    @contextmanager
    def write_many(self, *names: str):
        """
        Hold several collections' write locks at once, acquired in LOCK_ORDER.
        Yields the collections' data in the order the names were given.
        """
        for name in names:
            if name not in LOCK_ORDER:
                raise ValueError(f"unknown collection {name}")
        ordered = sorted(set(names), key=LOCK_ORDER.index)
        with ExitStack() as stack:
            held = {name: stack.enter_context(self.collection(name).write()) for name in ordered}
            yield tuple(held[name] for name in names)

    def flush(self) -> None:
        self.persister.flush()
