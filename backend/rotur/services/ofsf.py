# rotur/services/ofsf.py
"""
OFSF: the per-user file store.

Each user owns a directory `<root>/<username>/` holding one JSON file per
entry, `<uuid>.json` = {"entry": [...up to 14 positional fields...], "index": N},
plus a `.index.json` path index (lowercased "location/name+type" -> uuid).
Accounts from before the per-file layout have a single `<root>/<username>.ofsf`
flat list instead; it is split into per-file entries the first time the user
is touched and then removed.

Entry slots used by the server:
  0 type, 1 name, 2 location, 3 data, 7 created (ms), 8 edited (ms),
  11 data size (filled on index reads), 13 uuid

One reader/writer lock guards the whole store. A batch update holds the write
lock from its first command to the quota check, so batches never interleave.
"""
import json
import logging
import os
import re
import shutil
from dataclasses import dataclass, field
from typing import Any, Optional

from rotur.core.errors import BadInput, NotFound, QuotaExceeded
from rotur.core.persister import atomic_write
from rotur.core.rwlock import RWLock
from rotur.core.timeutil import now_ms

logger = logging.getLogger("uvicorn.error")

ENTRY_SIZE = 14
UUID_SLOT = 13
CREATED_SLOT = 7
EDITED_SLOT = 8
SIZE_SLOT = 11
DATA_SLOT = 3
FOLDER = ".folder"
INDEX_FILE = ".index.json"
DEFAULT_THRESHOLD = 51200
UUID_RE = re.compile(r"^[A-Za-z0-9]{32}$")

# Command names; the single-letter aliases are what older clients send.
ADD, REPLACE, DELETE = "ADD", "REPLACE", "DELETE"
COMMAND_ALIASES = {
    "ADD": ADD, "UUIDA": ADD,
    "REPLACE": REPLACE, "UUIDR": REPLACE,
    "DELETE": DELETE, "UUIDD": DELETE,
}

SUCCESS_PAYLOAD = "Successfully Updated Origin Files"


@dataclass
class UpdateCommand:
    command: str
    uuid: str
    dta: Any = None
    idx: Any = None


@dataclass
class UpdateResult:
    payload: str
    used_size: int
    available_size: int
    applied: int = 0
    skipped: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "payload": self.payload,
            "used_size": self.used_size,
            "available_size": self.available_size,
            "applied": self.applied,
            "skipped": self.skipped,
        }


def _dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def entry_path(entry: list) -> str:
    """Path-index key for an entry: lower(location + "/" + name + type)."""
    def slot(i: int) -> str:
        return _text(entry[i]) if len(entry) > i else ""
    return (slot(2) + "/" + slot(1) + slot(0)).lower()


def _one_based(idx: Any) -> int:
    """Clients address REPLACE slots from 1; returns the 0-based slot or -1."""
    if isinstance(idx, bool):
        return -1
    if isinstance(idx, (int, float)):
        return int(idx) - 1
    if isinstance(idx, str):
        try:
            return int(idx.strip()) - 1
        except ValueError:
            return -1
    return -1


def size_human(size: int) -> str:
    if size >= 1 << 30:
        return f"{size / (1 << 30):.4f} GB"
    if size >= 1 << 20:
        return f"{size / (1 << 20):.2f} MB"
    if size >= 1 << 10:
        return f"{size / (1 << 10):.2f} KB"
    return f"{size} bytes"


def parse_commands(raw: Any) -> list[UpdateCommand]:
    """Validate the wire form of a batch: a list of {command, uuid, dta?, idx?}."""
    if not isinstance(raw, list):
        raise BadInput("updates must be a list")
    commands = []
    for item in raw:
        if not isinstance(item, dict):
            raise BadInput("each update must be an object")
        name = COMMAND_ALIASES.get(str(item.get("command", "")).upper())
        if name is None:
            raise BadInput(f"unknown command {item.get('command')!r}")
        commands.append(UpdateCommand(name, str(item.get("uuid", "")), item.get("dta"), item.get("idx")))
    return commands


class OFSFStore:
    """
    Per-user file store rooted at `root`.

    Args:
        root: Directory holding `<username>/` directories and legacy `<username>.ofsf` files
    """

    def __init__(self, root: str):
        self.root = root
        self.lock = RWLock()

    # ------------------------------------------------------------------ paths
    def user_dir(self, username: str) -> str:
        return os.path.join(self.root, username.lower())

    def legacy_path(self, username: str) -> str:
        return os.path.join(self.root, username.lower() + ".ofsf")

    def _entry_file(self, username: str, uuid: str) -> str:
        return os.path.join(self.user_dir(username), uuid + ".json")

    def _index_file(self, username: str) -> str:
        return os.path.join(self.user_dir(username), INDEX_FILE)

    # ------------------------------------------------------------------ raw file access (lock held)
    def _read_meta(self, path: str) -> Optional[dict]:
        try:
            with open(path, "rb") as fh:
                meta = json.loads(fh.read())
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            logger.warning("[ofsf] unreadable entry %s: %s", path, exc)
            return None
        if not isinstance(meta, dict) or not isinstance(meta.get("entry"), list):
            return None
        return meta

    def _write_meta(self, username: str, uuid: str, entry: list, index: int) -> None:
        os.makedirs(self.user_dir(username), exist_ok=True)
        atomic_write(self._entry_file(username, uuid), _dumps({"entry": entry, "index": index}).encode("utf-8"))

    def _entry_files(self, username: str) -> list[str]:
        directory = self.user_dir(username)
        try:
            names = os.listdir(directory)
        except FileNotFoundError:
            return []
        return sorted(
            os.path.join(directory, name)
            for name in names
            if name.endswith(".json") and not name.startswith(".")
        )

    def _used_size(self, username: str) -> int:
        total = 0
        for path in self._entry_files(username):
            try:
                total += os.path.getsize(path)
            except OSError:
                continue
        return total

    # ------------------------------------------------------------------ path index (lock held)
    def _load_path_index(self, username: str) -> dict:
        try:
            with open(self._index_file(username), "rb") as fh:
                index = json.loads(fh.read())
            if isinstance(index, dict):
                return index
        except FileNotFoundError:
            pass
        except (OSError, ValueError) as exc:
            logger.warning("[ofsf] bad path index for %s, rebuilding: %s", username, exc)
        return self._rebuild_path_index(username)

    def _save_path_index(self, username: str, index: dict) -> None:
        os.makedirs(self.user_dir(username), exist_ok=True)
        atomic_write(self._index_file(username), _dumps(index).encode("utf-8"))

    def _rebuild_path_index(self, username: str) -> dict:
        index = {}
        for path in self._entry_files(username):
            meta = self._read_meta(path)
            if meta is None:
                continue
            index[entry_path(meta["entry"])] = os.path.basename(path)[: -len(".json")]
        if os.path.isdir(self.user_dir(username)):
            self._save_path_index(username, index)
        logger.info("[ofsf] rebuilt path index for %s (%d entries)", username, len(index))
        return index

    # ------------------------------------------------------------------ migration
    def migrate(self, username: str) -> bool:
        """
        Split a legacy `<username>.ofsf` list into per-file entries.

        A no-op once the user directory exists. Returns True when a migration ran.
        """
        with self.lock.write():
            return self._migrate(username)

    def _migrate(self, username: str) -> bool:
        legacy = self.legacy_path(username)
        if os.path.isdir(self.user_dir(username)) or not os.path.isfile(legacy):
            return False
        logger.info("[ofsf] migrating %s from legacy format", username)
        with open(legacy, "rb") as fh:
            raw = fh.read()
        if not raw.strip():
            os.remove(legacy)
            return True
        flat = json.loads(raw)
        if not isinstance(flat, list):
            raise ValueError(f"legacy file for {username} is not a list")

        os.makedirs(self.user_dir(username), exist_ok=True)
        path_index = {}
        position = 0
        for start in range(0, len(flat) - ENTRY_SIZE + 1, ENTRY_SIZE):
            entry = flat[start:start + ENTRY_SIZE]
            uuid = entry[UUID_SLOT]
            if not isinstance(uuid, str) or not uuid:
                continue
            self._write_meta(username, uuid, entry, position)
            path_index[entry_path(entry)] = uuid
            position += 1
        self._save_path_index(username, path_index)
        os.remove(legacy)
        logger.info("[ofsf] migration complete for %s (%d entries)", username, position)
        return True

    def _ensure_migrated(self, username: str) -> None:
        try:
            self.migrate(username)
        except (OSError, ValueError) as exc:
            logger.error("[ofsf] migration failed for %s: %s", username, exc)

    # ------------------------------------------------------------------ update batch
    def update(self, username: str, commands: list[UpdateCommand], max_size: int) -> UpdateResult:
        """
        Apply a batch of ADD / REPLACE / DELETE commands, then check the quota.

        Commands that cannot apply (bad uuid, ADD over an existing uuid, REPLACE
        of a missing uuid) are skipped and reported. Applied commands are kept
        even when the batch ends over quota.

        Raises:
            QuotaExceeded: The user's directory is larger than `max_size` afterwards
        """
        username = username.lower()
        self._ensure_migrated(username)
        result = UpdateResult(SUCCESS_PAYLOAD, 0, 0)
        now = now_ms()
        with self.lock.write():
            path_index = self._load_path_index(username) if os.path.isdir(self.user_dir(username)) else {}
            try:
                for command in commands:
                    reason = self._apply(username, command, path_index, now)
                    if reason is None:
                        result.applied += 1
                    else:
                        result.skipped.append({"uuid": command.uuid, "command": command.command, "reason": reason})
            finally:
                # Entries written before a failing command must stay findable by path
                if result.applied:
                    self._save_path_index(username, path_index)
            used = self._used_size(username)
        result.used_size = used
        result.available_size = max_size - used
        if used > max_size:
            logger.warning("[ofsf] %s exceeded storage limit (used: %d, available: %d)", username, used, max_size - used)
            raise QuotaExceeded(used, max_size - used)
        logger.info("[ofsf] %s applied %d/%d updates (used: %d)", username, result.applied, len(commands), used)
        return result

    def _apply(self, username: str, command: UpdateCommand, path_index: dict, now: int) -> Optional[str]:
        if not UUID_RE.match(command.uuid or ""):
            return "invalid uuid"
        path = self._entry_file(username, command.uuid)

        if command.command == ADD:
            if os.path.exists(path):
                return "uuid already exists"
            if not isinstance(command.dta, list) or len(command.dta) > ENTRY_SIZE:
                return "entry must be a list of at most 14 fields"
            entry = list(command.dta)
            if len(entry) > EDITED_SLOT:
                entry[CREATED_SLOT] = now
                entry[EDITED_SLOT] = now
            self._write_meta(username, command.uuid, entry, 0)
            path_index[entry_path(entry)] = command.uuid
            return None

        if command.command == REPLACE:
            meta = self._read_meta(path)
            if meta is None:
                return "uuid not found"
            entry = meta["entry"]
            old_path = entry_path(entry)
            slot = _one_based(command.idx)
            if 0 <= slot < len(entry):
                entry[slot] = command.dta
            if len(entry) > EDITED_SLOT:
                entry[EDITED_SLOT] = now
            self._write_meta(username, command.uuid, entry, meta.get("index", 0))
            new_path = entry_path(entry)
            if new_path != old_path:
                path_index.pop(old_path, None)
                path_index[new_path] = command.uuid
            return None

        # DELETE: absent is fine
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        for key in [k for k, v in path_index.items() if v == command.uuid]:
            del path_index[key]
        return None

    # ------------------------------------------------------------------ reads
    @staticmethod
    def _outward(entry: list) -> list:
        """Nested data of non-folder entries is sent as a JSON string."""
        entry = list(entry)
        if entry and entry[0] != FOLDER and len(entry) > DATA_SLOT and isinstance(entry[DATA_SLOT], (dict, list)):
            entry[DATA_SLOT] = _dumps(entry[DATA_SLOT])
        return entry

    def get(self, username: str, uuid: str) -> list:
        username = username.lower()
        if not UUID_RE.match(uuid or ""):
            raise NotFound("File not found")
        self._ensure_migrated(username)
        with self.lock.read():
            meta = self._read_meta(self._entry_file(username, uuid))
        if meta is None:
            raise NotFound("File not found")
        return self._outward(meta["entry"])

    def get_many(self, username: str, uuids: list[str]) -> dict[str, list]:
        username = username.lower()
        self._ensure_migrated(username)
        found = {}
        with self.lock.read():
            for uuid in uuids:
                if not UUID_RE.match(str(uuid)):
                    continue
                meta = self._read_meta(self._entry_file(username, uuid))
                if meta is not None:
                    found[uuid] = meta["entry"]
        return found

    def get_by_path(self, username: str, path: str) -> dict:
        username = username.lower()
        self._ensure_migrated(username)
        if not os.path.isdir(self.user_dir(username)):
            raise NotFound("File not found")
        with self.lock.write():
            path_index = self._load_path_index(username)
        uuid = path_index.get((path or "").lower())
        if uuid is None:
            raise NotFound("File not found")
        return {"uuid": uuid, "entry": self.get(username, uuid)}

    def path_index(self, username: str) -> dict:
        username = username.lower()
        self._ensure_migrated(username)
        if not os.path.isdir(self.user_dir(username)):
            return {}
        with self.lock.write():
            return dict(self._load_path_index(username))

    def index(self, username: str, threshold: int = DEFAULT_THRESHOLD) -> list:
        """
        Concatenation of every entry's fields, shallowest location first.

        With a positive `threshold`, data fields longer than `threshold` bytes
        are replaced by `false` and slot 11 carries the measured length; zero
        returns every entry unelided.
        """
        username = username.lower()
        self._ensure_migrated(username)
        metas = []
        with self.lock.read():
            for path in self._entry_files(username):
                meta = self._read_meta(path)
                if meta is not None:
                    metas.append(meta)

        rows = []
        for meta in metas:
            entry = list(meta["entry"])
            if threshold > 0 and len(entry) == ENTRY_SIZE:
                data = entry[DATA_SLOT]
                if entry[0] == FOLDER:
                    if isinstance(data, list):
                        entry[DATA_SLOT] = _dumps(data)
                        entry[SIZE_SLOT] = len(data)
                else:
                    text = data if isinstance(data, str) else _dumps(data) if isinstance(data, (dict, list)) else ""
                    if isinstance(data, (dict, list)):
                        entry[DATA_SLOT] = text
                    entry[SIZE_SLOT] = len(text.encode("utf-8"))
                    if entry[SIZE_SLOT] > threshold:
                        entry[DATA_SLOT] = False
            depth = len(_text(entry[2])) if len(entry) > 2 else 0
            rows.append((depth, meta.get("index", 0) if isinstance(meta.get("index"), int) else 0, entry))

        rows.sort(key=lambda row: (row[0], row[1]))
        flat = []
        for _, _, entry in rows:
            flat.extend(entry)
        return flat

    # ------------------------------------------------------------------ sizes
    def used_size(self, username: str) -> int:
        username = username.lower()
        self._ensure_migrated(username)
        with self.lock.read():
            return self._used_size(username)

    def size_human(self, username: str) -> str:
        return size_human(self.used_size(username))

    def stats(self, username: str, max_size: int) -> dict:
        username = username.lower()
        self._ensure_migrated(username)
        with self.lock.read():
            files = self._entry_files(username)
            used = self._used_size(username)
        return {"files": len(files), "used": used, "quota": max_size, "available": max_size - used}

    def file_stats(self, username: str, uuids: list[str]) -> list[dict]:
        """Size and mtime per uuid; missing files report ok=False."""
        username = username.lower()
        self._ensure_migrated(username)
        out = []
        with self.lock.read():
            for uuid in uuids:
                if not UUID_RE.match(str(uuid)):
                    out.append({"uuid": uuid, "ok": False})
                    continue
                try:
                    info = os.stat(self._entry_file(username, uuid))
                except OSError:
                    out.append({"uuid": uuid, "ok": False})
                    continue
                out.append({"uuid": uuid, "size": info.st_size, "mtime": int(info.st_mtime * 1000), "ok": True})
        return out

    # ------------------------------------------------------------------ removal
    def delete_all(self, username: str) -> None:
        username = username.lower()
        with self.lock.write():
            shutil.rmtree(self.user_dir(username), ignore_errors=True)
            try:
                os.remove(self.legacy_path(username))
            except FileNotFoundError:
                pass
        logger.info("[ofsf] deleted files for %s", username)
