"""
Shared key-value store for CSRF tokens, rate-limit counters and used
bot-verification tokens.

Every backend implements the same small interface (KeyValueStore):

  get(key)                         -> str | None
  set(key, value, ttl)             -> None
  set_if_absent(key, value, ttl)   -> bool   (True if this call created it)
  increment(key, ttl)              -> int    (atomic; ttl set on creation)
  delete(key)                      -> bool   (atomic; True if a live key was removed)
  ping()                           -> None
  purge_expired()                  -> int    (number of expired rows removed)

Expired keys behave exactly like missing keys. Both backends also drop
them for real every so often (MemoryStore on writes, SupabaseStore via
kv_purge_expired), so one-off keys such as per-window rate-limit counters
do not pile up.

Backends:
  MemoryStore    - process-local dict guarded by a lock. Tests and
                   single-instance development only.
  SupabaseStore  - Postgres via PostgREST RPC functions (see
                   supabase/migrations/*_kv_store.sql). Safe across processes
                   and instances because every operation is one SQL statement.

Store failures surface as StoreUnavailableError; callers decide whether to
fail open or closed.
"""

import logging
import threading
import time
from typing import Callable, Optional, Protocol

from portfolio_api.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str, ttl_seconds: float) -> None: ...

    def set_if_absent(self, key: str, value: str, ttl_seconds: float) -> bool: ...

    def increment(self, key: str, ttl_seconds: float) -> int: ...

    def delete(self, key: str) -> bool: ...

    def ping(self) -> None: ...

    def purge_expired(self) -> int: ...


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------

class MemoryStore:
    """
    Thread-safe in-process store with per-key expiry.

    The clock is injectable so tests can move time forward without sleeping.
    Writes sweep out expired entries at most once per sweep_interval_seconds.
    """

    def __init__(self, clock: Clock = time.time, sweep_interval_seconds: float = 60):
        self._clock = clock
        self._lock = threading.Lock()
        self._data: dict[str, tuple[str, float]] = {}
        self.sweep_interval_seconds = sweep_interval_seconds
        self._last_sweep = clock()

    def _live(self, key: str, now: float) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= now:
            del self._data[key]
            return None
        return value

    def _sweep(self, now: float) -> int:
        expired = [key for key, (_, expires_at) in self._data.items() if expires_at <= now]
        for key in expired:
            del self._data[key]
        self._last_sweep = now
        return len(expired)

    def _maybe_sweep(self, now: float) -> None:
        if now - self._last_sweep >= self.sweep_interval_seconds:
            self._sweep(now)

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._live(key, self._clock())

    def set(self, key: str, value: str, ttl_seconds: float) -> None:
        with self._lock:
            now = self._clock()
            self._maybe_sweep(now)
            self._data[key] = (value, now + ttl_seconds)

    def set_if_absent(self, key: str, value: str, ttl_seconds: float) -> bool:
        with self._lock:
            now = self._clock()
            self._maybe_sweep(now)
            if self._live(key, now) is not None:
                return False
            self._data[key] = (value, now + ttl_seconds)
            return True

    def increment(self, key: str, ttl_seconds: float) -> int:
        with self._lock:
            now = self._clock()
            self._maybe_sweep(now)
            current = self._live(key, now)
            if current is None:
                self._data[key] = ("1", now + ttl_seconds)
                return 1
            count = int(current) + 1
            self._data[key] = (str(count), self._data[key][1])
            return count

    def delete(self, key: str) -> bool:
        with self._lock:
            existed = self._live(key, self._clock()) is not None
            self._data.pop(key, None)
            return existed

    def ping(self) -> None:
        return None

    def purge_expired(self) -> int:
        with self._lock:
            return self._sweep(self._clock())


# ---------------------------------------------------------------------------
# Supabase backend
# ---------------------------------------------------------------------------

class SupabaseStore:
    """
    Store backed by the kv_store table in Supabase Postgres.

    Each method is a single RPC call to a SQL function, so the atomicity of
    increment and delete comes from Postgres row locking rather than from
    anything in this process.

    Every purge_interval_seconds a write also calls kv_purge_expired. Each
    instance purges on its own schedule; the delete is idempotent.
    """

    def __init__(self, client, clock: Clock = time.time, purge_interval_seconds: float = 300):
        if client is None:
            raise ValueError("A Supabase client is required for SupabaseStore")
        self._client = client
        self._clock = clock
        self.purge_interval_seconds = purge_interval_seconds
        self._last_purge = clock()

    def _rpc(self, function: str, params: dict):
        try:
            return self._client.rpc(function, params).execute().data
        except Exception as e:
            # PostgREST, httpx timeouts and connection errors all land here
            logger.error(f"Shared store call {function} failed: {e}")
            raise StoreUnavailableError(f"{function} failed") from e

    def get(self, key: str) -> Optional[str]:
        return self._rpc("kv_get", {"p_key": key})

    def set(self, key: str, value: str, ttl_seconds: float) -> None:
        self._maybe_purge()
        self._rpc("kv_set", {"p_key": key, "p_value": value, "p_ttl_seconds": ttl_seconds})

    def set_if_absent(self, key: str, value: str, ttl_seconds: float) -> bool:
        self._maybe_purge()
        return bool(self._rpc("kv_set_if_absent", {"p_key": key, "p_value": value, "p_ttl_seconds": ttl_seconds}))

    def increment(self, key: str, ttl_seconds: float) -> int:
        self._maybe_purge()
        return int(self._rpc("kv_increment", {"p_key": key, "p_ttl_seconds": ttl_seconds}))

    def delete(self, key: str) -> bool:
        return bool(self._rpc("kv_take", {"p_key": key}))

    def ping(self) -> None:
        self._rpc("kv_get", {"p_key": "__ping__"})

    def purge_expired(self) -> int:
        return int(self._rpc("kv_purge_expired", {}) or 0)

    def _maybe_purge(self) -> None:
        now = self._clock()
        if now - self._last_purge < self.purge_interval_seconds:
            return
        self._last_purge = now
        try:
            removed = self.purge_expired()
        except StoreUnavailableError:
            # Housekeeping only; the write that triggered it still goes ahead
            return
        if removed:
            logger.info(f"Purged {removed} expired keys from the shared store")
