"""Key/value slots backing the login attempt ledger."""

import json
import logging
import threading
import time

from .errors import BackendError, BackendUnavailable, LedgerCorrupted, LedgerUnavailable

logger = logging.getLogger(__name__)


class MemorySlotStore:
    """
    In-memory (per process) slots. Entries untouched for ``ttl_sec`` are swept,
    which is longer than any failure history worth keeping.
    """

    def __init__(self, ttl_sec: int = 3600, clock=time.time):
        self.ttl_sec = ttl_sec
        self._clock = clock
        self._lock = threading.Lock()
        self._slots = {}  # key -> (written_at, value)

    def _sweep(self, now: float) -> None:
        stale = [k for k, (ts, _) in self._slots.items() if now - ts > self.ttl_sec]
        for k in stale:
            del self._slots[k]

    def get(self, key: str):
        with self._lock:
            self._sweep(self._clock())
            entry = self._slots.get(key)
            return dict(entry[1]) if entry else None

    def put(self, key: str, value: dict) -> None:
        with self._lock:
            now = self._clock()
            self._sweep(now)
            self._slots[key] = (now, dict(value))

    def delete(self, key: str) -> None:
        with self._lock:
            self._slots.pop(key, None)


class SupabaseSlotStore:
    """Slots persisted as rows of the hosted ``login_attempts`` table."""

    table = "login_attempts"

    def __init__(self, backend):
        self.backend = backend

    def get(self, key: str):
        try:
            rows = self.backend.select(self.table, filters={"key": key}, columns="key,value")
        except (BackendError, BackendUnavailable) as exc:
            raise LedgerUnavailable() from exc
        if not rows:
            return None
        raw = rows[0].get("value")
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except ValueError as exc:
                raise LedgerCorrupted() from exc
        if not isinstance(raw, dict):
            raise LedgerCorrupted()
        return raw

    def put(self, key: str, value: dict) -> None:
        try:
            self.backend.upsert(self.table, {"key": key, "value": value}, on_conflict="key")
        except (BackendError, BackendUnavailable) as exc:
            raise LedgerUnavailable() from exc

    def delete(self, key: str) -> None:
        try:
            self.backend.delete(self.table, filters={"key": key})
        except (BackendError, BackendUnavailable) as exc:
            raise LedgerUnavailable() from exc


def build_slot_store(settings, backend):
    if settings.ledger_backend == "supabase":
        logger.info("Login ledger stored in hosted table %s", SupabaseSlotStore.table)
        return SupabaseSlotStore(backend)
    ttl = settings.ledger_ttl_sec
    lockout = settings.login_policy.lockout_seconds
    if ttl < lockout:
        logger.warning("LEDGER_TTL_SEC=%s is shorter than the %ss lockout; using %ss", ttl, lockout, lockout)
        ttl = lockout
    return MemorySlotStore(ttl_sec=ttl)
