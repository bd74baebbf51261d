# wrapped/services/response_cache.py
"""
Short-TTL response cache for Spotify search endpoints.

One instance lives for the whole process (built in wrapped.main and injected
through get_response_cache). The in-process store is a cachetools.TTLCache:
entries older than the TTL read as a miss, and the TTLCache drops them on its
own, or evicts least-recently-used entries once max_entries is reached.

get_or_fetch() is single-flight per key: while one caller is fetching a cold
key, other callers for the same key wait for that result instead of hitting
Spotify again. Failed fetches are never stored. An AuthExpiredError belongs to
the caller whose token failed, so waiters that see one run their own fetch.
"""
import json
import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

import redis
from cachetools import TTLCache

from wrapped.config.settings import CACHE_MAX_ENTRIES, CACHE_TTL_SECONDS
from wrapped.services.errors import AuthExpiredError
from wrapped.services.redis_client import get_redis_client

logger = logging.getLogger(__name__)


class _Miss:
    def __repr__(self):
        return "MISS"

    def __bool__(self):
        return False


# Returned by get() for absent and expired keys alike
MISS = _Miss()


@dataclass
class CacheEntry:
    key: str
    stored_at: float
    payload: Any


class _InFlight:
    """A fetch in progress for one key; waiters block on event."""

    __slots__ = ("event", "payload", "error", "ok")

    def __init__(self) -> None:
        self.event = threading.Event()
        self.payload: Any = None
        self.error: Optional[BaseException] = None
        self.ok = False


# --------------------------
# Key construction
# --------------------------
def playlist_search_key(query: str, limit: int, include_tracks: bool) -> str:
    # The two response shapes differ, so the flag is always part of the key
    flag = "withTracks" if include_tracks else "noTracks"
    return f"{query}|{limit}|{flag}"


def playlist_tracks_key(playlist_id: str) -> str:
    return f"tracks|{playlist_id}"


def track_search_key(query: str) -> str:
    return f"track|{query}"


class ResponseCache:
    def __init__(
        self,
        ttl_seconds: float = CACHE_TTL_SECONDS,
        max_entries: Optional[int] = CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl = ttl_seconds
        self.max_entries = max_entries or CACHE_MAX_ENTRIES
        self.clock = clock

        # TTLCache reorders on reads, so every access goes through the lock
        self._entries: TTLCache = TTLCache(maxsize=self.max_entries, ttl=ttl_seconds, timer=clock)
        self._lock = threading.Lock()

        self._in_flight: Dict[str, _InFlight] = {}
        self._in_flight_lock = threading.Lock()

    # --------------------------
    # Storage (overridden by RedisResponseCache)
    # --------------------------
    def _read(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(key)

    def _write(self, entry: CacheEntry) -> None:
        with self._lock:
            self._entries[entry.key] = entry

    def purge_expired(self) -> int:
        with self._lock:
            before = len(self._entries)
            self._entries.expire()
            return before - len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    # --------------------------
    # Public contract
    # --------------------------
    def get(self, key: str) -> Any:
        entry = self._read(key)
        if entry is None:
            return MISS
        if self.clock() - entry.stored_at >= self.ttl:
            return MISS
        return entry.payload

    def set(self, key: str, payload: Any) -> None:
        self._write(CacheEntry(key=key, stored_at=self.clock(), payload=payload))

    def get_or_fetch(self, key: str, fetch_fn: Callable[[], Any]) -> Any:
        payload, _ = self.get_or_fetch_with_hit(key, fetch_fn)
        return payload

    def get_or_fetch_with_hit(self, key: str, fetch_fn: Callable[[], Any]) -> Tuple[Any, bool]:
        """
        Same as get_or_fetch() but also reports whether the payload came from the cache.
        Callers that waited on another request's in-flight fetch get hit=False.
        """
        cached = self.get(key)
        if cached is not MISS:
            return cached, True

        slot, is_leader = self._claim(key)
        if not is_leader:
            slot.event.wait()
            if slot.ok:
                return slot.payload, False
            if isinstance(slot.error, AuthExpiredError):
                # The leader's token failed, not ours: fetch with our own
                logger.info(f"In-flight fetch for {key!r} hit another user's auth error, fetching again")
                payload = fetch_fn()
                self.set(key, payload)
                return payload, False
            if slot.error is not None:
                raise slot.error
            raise RuntimeError(f"In-flight fetch for {key!r} did not complete")

        try:
            # A previous leader may have stored the key between our get() and _claim()
            cached = self.get(key)
            if cached is not MISS:
                slot.payload = cached
                slot.ok = True
                return cached, True

            payload = fetch_fn()
            self.set(key, payload)

            slot.payload = payload
            slot.ok = True
            return payload, False
        except Exception as e:
            slot.error = e
            raise
        finally:
            slot.event.set()
            self._release(key)

    # --------------------------
    # Single-flight bookkeeping
    # --------------------------
    def _claim(self, key: str) -> Tuple[_InFlight, bool]:
        with self._in_flight_lock:
            slot = self._in_flight.get(key)
            if slot is not None:
                return slot, False
            slot = _InFlight()
            self._in_flight[key] = slot
            return slot, True

    def _release(self, key: str) -> None:
        with self._in_flight_lock:
            self._in_flight.pop(key, None)


class RedisResponseCache(ResponseCache):
    """
    Redis-backed variant for deployments running several server processes.
    Entries carry their own stored_at so TTL reads follow the same clock rule;
    the Redis expiry only reclaims memory. Single-flight stays per process.
    """

    def __init__(
        self,
        client=None,
        ttl_seconds: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
        prefix: str = "wrapped:cache:",
    ):
        super().__init__(ttl_seconds=ttl_seconds, clock=clock)
        self.redis = client if client is not None else get_redis_client()
        self.prefix = prefix

    def _read(self, key: str) -> Optional[CacheEntry]:
        try:
            raw = self.redis.get(self.prefix + key)
        except redis.RedisError as e:
            logger.warning(f"Redis cache read failed for {key!r}: {e}")
            return None

        if not raw:
            return None

        try:
            data = json.loads(raw)
            return CacheEntry(key=key, stored_at=float(data["stored_at"]), payload=data["payload"])
        except (ValueError, KeyError, TypeError):
            logger.warning(f"Discarding unreadable cache entry {key!r}")
            return None

    def _write(self, entry: CacheEntry) -> None:
        try:
            value = json.dumps({"stored_at": entry.stored_at, "payload": entry.payload})
        except (TypeError, ValueError) as e:
            logger.warning(f"Payload for {entry.key!r} is not JSON serializable: {e}")
            return

        try:
            self.redis.set(self.prefix + entry.key, value, ex=max(1, math.ceil(self.ttl)))
        except redis.RedisError as e:
            logger.warning(f"Redis cache write failed for {entry.key!r}: {e}")

    def purge_expired(self) -> int:
        # Redis expires keys on its own
        return 0

    def clear(self) -> None:
        cursor = 0
        try:
            while True:
                cursor, keys = self.redis.scan(cursor=cursor, match=f"{self.prefix}*", count=200)
                if keys:
                    self.redis.delete(*keys)
                if cursor == 0:
                    break
        except redis.RedisError as e:
            logger.warning(f"Redis cache clear failed: {e}")

    def size(self) -> int:
        count = 0
        try:
            for _ in self.redis.scan_iter(match=f"{self.prefix}*", count=200):
                count += 1
        except redis.RedisError as e:
            logger.warning(f"Redis cache size failed: {e}")
        return count


def build_response_cache(backend: str, ttl_seconds: float, max_entries: Optional[int] = None) -> ResponseCache:
    if backend == "redis":
        logger.info("Using Redis response cache")
        return RedisResponseCache(ttl_seconds=ttl_seconds)
    return ResponseCache(ttl_seconds=ttl_seconds, max_entries=max_entries)
