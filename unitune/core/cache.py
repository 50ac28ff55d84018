"""
Link Cache - bounded, TTL-expiring cache of resolved link sets.

This module provides the persisted cache that sits in front of the
resolution client. Entries live in one JSON document under a namespace key of
a host-supplied KeyValueStore.

Features:
- One key derivation function: cache_key(url, preferred_platform)
- Lazy expiration on read, plus an explicit clear_expired() sweep
- Size bound: the newest max_entries by cached_at survive (not LRU-by-access)
- Corrupted persisted data costs a cache miss, never an exception
- Writes serialized with an asyncio.Lock per cache instance
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
import json
import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from unitune.core.exceptions import CacheUnreadableError
from unitune.core.float_controller import float_event
from unitune.core.models import CacheEntry, Platform, ResolvedLinkSet

if TYPE_CHECKING:
    from collections.abc import Callable

    from unitune.core.store import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE = timedelta(days=7)
DEFAULT_MAX_ENTRIES = 50
DEFAULT_NAMESPACE = "unitune_link_cache"


def cache_key(original_url: str, preferred: Platform | None = None) -> str:
    """
    Derive the cache key for (original URL, preferred platform hint).

    Platform values never contain ``|``, so distinct pairs never collide.
    """
    return f"{preferred.value if preferred is not None else 'any'}|{original_url}"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class LinkCache:
    """
    Persisted cache mapping (original URL, preferred platform) → ResolvedLinkSet.

    Example:
        >>> cache = LinkCache(InMemoryKeyValueStore(), max_age=timedelta(days=7))
        >>> await cache.put(url, Platform.SPOTIFY, resolved)
        >>> await cache.get(url, Platform.SPOTIFY)
        ResolvedLinkSet(...)
    """

    def __init__(
        self,
        store: KeyValueStore,
        max_age: timedelta = DEFAULT_MAX_AGE,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        namespace: str = DEFAULT_NAMESPACE,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Initialize link cache.

        Args:
            store: Host-supplied key/value store
            max_age: Entries older than this are treated as absent
            max_entries: Maximum number of entries kept after a put
            namespace: Store key holding this cache's entries
            clock: Source of the current time (timezone-aware)
        """
        if max_entries <= 0:
            raise ValueError(f"max_entries must be positive, got {max_entries}")
        if max_age <= timedelta(0):
            raise ValueError(f"max_age must be positive, got {max_age}")

        self._store = store
        self._max_age = max_age
        self._max_entries = max_entries
        self._namespace = namespace
        self._clock = clock
        self._lock = asyncio.Lock()

        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._unreadable = 0

    async def get(
        self, original_url: str, preferred: Platform | None = None
    ) -> ResolvedLinkSet | None:
        """
        Get a cached result. Expired entries are evicted and reported as a miss.

        Args:
            original_url: URL the result was resolved from
            preferred: Preferred platform hint the result was cached under

        Returns:
            Cached ResolvedLinkSet or None
        """
        key = cache_key(original_url, preferred)

        async with self._lock:
            entries = await self._load()
            entry = entries.get(key)

            if entry is None:
                self._misses += 1
                float_event("cache.miss", key=key)
                return None

            if entry.is_expired(self._clock(), self._max_age):
                del entries[key]
                await self._save(entries)
                self._misses += 1
                self._evictions += 1
                logger.debug(f"Cache expired for: {original_url}")
                float_event("cache.expired", key=key)
                return None

            self._hits += 1
            logger.debug(f"Cache hit for: {original_url} ({preferred.value if preferred else 'any'})")
            float_event("cache.hit", key=key)
            return entry.result

    async def put(
        self,
        original_url: str,
        preferred: Platform | None,
        result: ResolvedLinkSet,
    ) -> None:
        """
        Write or overwrite the entry, then trim to the newest max_entries.

        Args:
            original_url: URL the result was resolved from
            preferred: Preferred platform hint (None = any)
            result: Resolved link set to cache
        """
        key = cache_key(original_url, preferred)

        async with self._lock:
            entries = await self._load()
            # re-insert so ties on cached_at favour the latest write
            entries.pop(key, None)
            entries[key] = CacheEntry(key=key, result=result, cached_at=self._clock())

            if len(entries) > self._max_entries:
                entries = self._trim(entries)

            await self._save(entries)
            logger.debug(f"Cached link for: {original_url}")
            float_event("cache.put", key=key, size=len(entries))

    async def invalidate(self, original_url: str, preferred: Platform | None = None) -> bool:
        """
        Remove one entry.

        Returns:
            True if an entry was removed, False if none existed
        """
        key = cache_key(original_url, preferred)

        async with self._lock:
            entries = await self._load()
            if key not in entries:
                return False
            del entries[key]
            await self._save(entries)
            float_event("cache.invalidated", key=key)
            return True

    async def clear_expired(self) -> int:
        """
        Maintenance sweep: drop every expired entry.

        Returns:
            Number of entries removed
        """
        async with self._lock:
            entries = await self._load()
            now = self._clock()
            fresh = {
                key: entry
                for key, entry in entries.items()
                if not entry.is_expired(now, self._max_age)
            }
            removed = len(entries) - len(fresh)
            if removed:
                await self._save(fresh)
                self._evictions += removed
            logger.debug(f"Cleared {removed} expired cache entries")
            return removed

    async def clear_all(self) -> None:
        """Remove the whole namespace and reset statistics."""
        async with self._lock:
            try:
                await self._store.remove(self._namespace)
            except Exception as e:
                logger.warning(f"Could not clear cache namespace {self._namespace}: {e}")
            self._hits = 0
            self._misses = 0
            self._evictions = 0
            logger.info("Cleared all link cache")

    async def size(self) -> int:
        """Number of stored entries, expired ones included."""
        async with self._lock:
            return len(await self._load())

    def _trim(self, entries: dict[str, CacheEntry]) -> dict[str, CacheEntry]:
        ranked = sorted(
            enumerate(entries.values()),
            key=lambda pair: (pair[1].cached_at, pair[0]),
            reverse=True,
        )
        kept = [entry for _, entry in ranked[: self._max_entries]]
        self._evictions += len(entries) - len(kept)
        # oldest first so insertion order keeps tracking recency
        return {entry.key: entry for entry in reversed(kept)}

    async def _load(self) -> dict[str, CacheEntry]:
        try:
            raw = await self._store.get(self._namespace)
        except Exception as e:
            logger.warning(f"Could not read cache namespace {self._namespace}: {e}")
            return {}

        if not raw:
            return {}

        try:
            return self._deserialize(raw)
        except CacheUnreadableError as e:
            self._unreadable += 1
            logger.warning(f"Link cache unreadable, treating as empty: {e}")
            float_event("cache.unreadable", namespace=self._namespace)
            return {}

    def _deserialize(self, raw: str) -> dict[str, CacheEntry]:
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise CacheUnreadableError(f"Invalid JSON in {self._namespace}") from e

        if not isinstance(data, dict):
            raise CacheUnreadableError(f"Expected an object in {self._namespace}")

        entries: dict[str, CacheEntry] = {}
        for key, value in data.items():
            try:
                entry = CacheEntry.model_validate(value)
            except ValidationError:
                self._unreadable += 1
                logger.warning(f"Dropping unreadable cache entry: {key}")
                continue
            entries[key] = entry.model_copy(update={"key": key})
        return entries

    async def _save(self, entries: dict[str, CacheEntry]) -> None:
        payload = json.dumps(
            {key: entry.model_dump(mode="json") for key, entry in entries.items()}
        )
        try:
            await self._store.set(self._namespace, payload)
        except Exception as e:
            logger.warning(f"Could not write cache namespace {self._namespace}: {e}")

    @property
    def max_age(self) -> timedelta:
        return self._max_age

    @property
    def max_entries(self) -> int:
        return self._max_entries

    @property
    def stats(self) -> dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dict with hits, misses, evictions, unreadable, hit_rate
        """
        total = self._hits + self._misses
        hit_rate = (self._hits / total * 100) if total > 0 else 0.0

        return {
            "namespace": self._namespace,
            "max_entries": self._max_entries,
            "max_age_seconds": self._max_age.total_seconds(),
            "hits": self._hits,
            "misses": self._misses,
            "evictions": self._evictions,
            "unreadable": self._unreadable,
            "hit_rate": f"{hit_rate:.2f}%",
        }

    def __repr__(self) -> str:
        return (
            f"LinkCache(namespace={self._namespace!r}, max_entries={self._max_entries}, "
            f"max_age={self._max_age})"
        )


__all__ = ["DEFAULT_MAX_AGE", "DEFAULT_MAX_ENTRIES", "DEFAULT_NAMESPACE", "LinkCache", "cache_key"]
