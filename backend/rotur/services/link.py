# rotur/services/link.py
"""
Device link codes.

A device without credentials asks for a short code and shows it to the user.
The user submits the code from a logged-in client, which attaches their key
to it; the first device then claims the key once. Codes live in memory only
and expire after `ttl` seconds.
"""
import logging
import secrets
import threading
import time

from rotur.core.errors import NotFound

logger = logging.getLogger("uvicorn.error")

LINK_CODE_TTL = 600  # seconds


class LinkCodes:
    """
    Pending link codes: code -> {"token", "created"}.

    Args:
        ttl: Seconds a code stays usable after it was issued
    """

    def __init__(self, ttl: int = LINK_CODE_TTL):
        self.ttl = ttl
        self._codes: dict[str, dict] = {}
        self._lock = threading.Lock()

    def _prune(self, now: float) -> None:
        expired = [code for code, entry in self._codes.items() if now - entry["created"] >= self.ttl]
        for code in expired:
            del self._codes[code]

    def _live(self, code: str, now: float) -> dict | None:
        self._prune(now)
        return self._codes.get((code or "").upper())

    def generate(self, now: float | None = None) -> str:
        now = now if now is not None else time.time()
        with self._lock:
            self._prune(now)
            code = secrets.token_hex(3).upper()
            while code in self._codes:
                code = secrets.token_hex(3).upper()
            self._codes[code] = {"token": "", "created": now}
        return code

    def link(self, code: str, token: str, now: float | None = None) -> None:
        """Attach the caller's key to an issued code."""
        with self._lock:
            entry = self._live(code, now if now is not None else time.time())
            if entry is None:
                raise NotFound("No auth code found")
            entry["token"] = token

    def is_linked(self, code: str, now: float | None = None) -> bool:
        with self._lock:
            entry = self._live(code, now if now is not None else time.time())
            return entry is not None and bool(entry["token"])

    def claim(self, code: str, now: float | None = None) -> str:
        """Hand out the linked key once; the code is gone afterwards."""
        with self._lock:
            entry = self._live(code, now if now is not None else time.time())
            if entry is None or not entry["token"]:
                raise NotFound("Code is not linked")
            del self._codes[code.upper()]
        logger.info("[link] code %s claimed", code.upper())
        return entry["token"]
