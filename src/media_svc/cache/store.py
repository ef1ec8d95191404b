"""Bounded, TTL-aware store of resolved image URLs."""

from __future__ import annotations

import asyncio
import heapq
import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from ..media.types import CacheEntry, Tier
from .base import CacheBackend


logger = logging.getLogger(__name__)


@dataclass
class CacheStore:
    """
    In-memory cache of resolution results with:
    - TTL expiry (lazy on read, eager on a periodic sweep)
    - LRU eviction bounded by entry count and estimated bytes
    - Optional write-through persistence backend

    Recency is tracked in a min-heap of (last_accessed_at, tick, key).
    Heap items go stale when an entry is touched again; stale items are
    skipped on pop and the heap is rebuilt when it grows too far past the
    live entry count.

    A failing backend drops the store to memory-only for the rest of the
    session. Reads never touch the backend.
    """
    max_entries: int = 100
    max_size_bytes: int = 50 * 1024 * 1024
    default_ttl_seconds: float = 86400.0
    sweep_interval_cap_seconds: float = 300.0

    backend: CacheBackend | None = None
    clock: Callable[[], float] = time.time

    # Internal storage
    _store: dict[str, CacheEntry] = field(default_factory=dict, init=False)
    _recency: list[tuple[float, int, str]] = field(default_factory=list, init=False)
    _tick: int = field(default=0, init=False)
    _size_bytes: int = field(default=0, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)
    _degraded: bool = field(default=False, init=False)
    _running: bool = field(default=False, init=False)

    # Stats
    _hits: int = field(default=0, init=False)
    _misses: int = field(default=0, init=False)
    _evictions: int = field(default=0, init=False)
    _expirations: int = field(default=0, init=False)

    def get(self, key: str) -> CacheEntry | None:
        """
        Look up a non-expired entry and mark it as accessed.

        Expired entries are removed and reported as a miss.
        """
        entry = self._store.get(key)
        if entry is None:
            self._misses += 1
            return None

        now = self.clock()
        if entry.is_expired(now):
            self._remove(key)
            self._expirations += 1
            self._misses += 1
            return None

        entry.access_count += 1
        entry.last_accessed_at = now
        self._touch(entry)
        self._hits += 1
        return entry

    def has(self, key: str) -> bool:
        """Whether a non-expired entry exists (does not count as an access)."""
        entry = self._store.get(key)
        return entry is not None and not entry.is_expired(self.clock())

    def peek(self, key: str) -> CacheEntry | None:
        """Entry without touching recency or stats (expired entries included)."""
        return self._store.get(key)

    async def put(self, key: str, entry: CacheEntry) -> None:
        """Insert or replace an entry, then evict down to the limits."""
        async with self._lock:
            self._insert(key, entry)
            self.evict_if_needed()

        await self._persist(entry)

    def evict_if_needed(self) -> list[str]:
        """
        Evict least-recently-accessed entries until under both limits.

        Returns the evicted keys.
        """
        evicted: list[str] = []
        while self._over_limits() and self._recency:
            _, tick, key = heapq.heappop(self._recency)
            entry = self._store.get(key)
            if entry is None or entry.tick != tick:
                continue  # stale index item
            self._remove(key)
            self._evictions += 1
            evicted.append(key)

        if evicted:
            logger.debug(f"Evicted {len(evicted)} cache entries: {evicted}")
        return evicted

    async def repoint(self, asset_id: str, url: str, tier: Tier, from_tier: Tier = Tier.DURABLE) -> int:
        """
        Point an asset's cached entries that resolved to ``from_tier`` at a new URL/tier.

        Entries resolved to other tiers (e.g. thumbnails for small variants)
        are left alone. TTL and access bookkeeping are preserved. Returns the
        number updated.
        """
        async with self._lock:
            updated = []
            for entry in self._store.values():
                if entry.asset_id != asset_id or entry.resolved_tier is not from_tier:
                    continue
                self._size_bytes -= entry.estimated_size
                entry.url = url
                entry.resolved_tier = tier
                self._size_bytes += entry.estimated_size
                updated.append(entry)
            self.evict_if_needed()

        for entry in updated:
            await self._persist(entry)
        return len(updated)

    async def delete(self, key: str) -> bool:
        """Delete a key from the cache."""
        async with self._lock:
            if key not in self._store:
                return False
            self._remove(key)

        if self.backend is not None and not self._degraded:
            await self.backend.delete(key)
        return True

    async def clear(self) -> None:
        """Clear all in-memory entries."""
        async with self._lock:
            self._store.clear()
            self._recency.clear()
            self._size_bytes = 0

    async def warm(self) -> int:
        """Load persisted entries from the backend. Returns count loaded."""
        if self.backend is None or self._degraded:
            return 0

        try:
            entries = await self.backend.load_all()
        except Exception as e:
            self._degrade(f"load failed: {e}")
            return 0

        if entries is None:
            self._degrade("backend unavailable on warm-up")
            return 0

        now = self.clock()
        loaded = 0
        async with self._lock:
            for entry in sorted(entries, key=lambda e: e.last_accessed_at):
                if entry.is_expired(now):
                    continue
                self._insert(entry.key, entry)
                loaded += 1
            self.evict_if_needed()

        logger.info(f"Cache warmed with {loaded} persisted entries")
        return loaded

    def sweep_expired(self) -> int:
        """Remove all expired entries. Returns count removed."""
        now = self.clock()
        expired = [key for key, entry in self._store.items() if entry.is_expired(now)]
        for key in expired:
            self._remove(key)
        self._expirations += len(expired)
        return len(expired)

    @property
    def sweep_interval_seconds(self) -> float:
        return max(1.0, min(self.default_ttl_seconds / 4, self.sweep_interval_cap_seconds))

    async def sweep_loop(self) -> None:
        """
        Background loop that purges expired entries.

        Call this as a background task.
        """
        self._running = True
        interval = self.sweep_interval_seconds
        logger.info(f"Cache sweep started (interval={interval}s)")

        while self._running:
            try:
                await asyncio.sleep(interval)
                removed = self.sweep_expired()
                if removed:
                    logger.debug(f"Cache sweep removed {removed} expired entries")
            except asyncio.CancelledError:
                logger.info("Cache sweep cancelled")
                break
            except Exception as e:
                logger.error(f"Cache sweep error: {e}")

    def stop(self) -> None:
        self._running = False

    @property
    def degraded(self) -> bool:
        """True once the persistence backend has been abandoned for this session."""
        return self._degraded

    @property
    def size(self) -> int:
        """Current number of entries."""
        return len(self._store)

    @property
    def size_bytes(self) -> int:
        return self._size_bytes

    @property
    def stats(self) -> dict:
        """Cache statistics."""
        total = self._hits + self._misses
        hit_rate = (self._hits / total * 100) if total > 0 else 0

        return {
            "size": self.size,
            "max_entries": self.max_entries,
            "size_bytes": self._size_bytes,
            "max_size_bytes": self.max_size_bytes,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate_percent": round(hit_rate, 2),
            "evictions": self._evictions,
            "expirations": self._expirations,
            "persistent": self.backend is not None and not self._degraded,
        }

    def _insert(self, key: str, entry: CacheEntry) -> None:
        """Store an entry (caller holds lock)."""
        if key in self._store:
            self._remove(key)
        entry.key = key
        self._store[key] = entry
        self._size_bytes += entry.estimated_size
        self._touch(entry)

    def _touch(self, entry: CacheEntry) -> None:
        self._tick += 1
        entry.tick = self._tick
        heapq.heappush(self._recency, (entry.last_accessed_at, entry.tick, entry.key))
        if len(self._recency) > 4 * len(self._store) + 64:
            self._rebuild_index()

    def _rebuild_index(self) -> None:
        self._recency = [(e.last_accessed_at, e.tick, k) for k, e in self._store.items()]
        heapq.heapify(self._recency)

    def _remove(self, key: str) -> None:
        entry = self._store.pop(key, None)
        if entry is not None:
            self._size_bytes -= entry.estimated_size

    def _over_limits(self) -> bool:
        return len(self._store) > self.max_entries or self._size_bytes > self.max_size_bytes

    async def _persist(self, entry: CacheEntry) -> None:
        if self.backend is None or self._degraded:
            return
        try:
            ok = await self.backend.save(entry, entry.expires_in(self.clock()))
        except Exception as e:
            self._degrade(f"save failed: {e}")
            return
        if not ok:
            self._degrade("save rejected")

    def _degrade(self, reason: str) -> None:
        if not self._degraded:
            logger.warning(f"Cache persistence unavailable ({reason}); continuing in-memory only")
        self._degraded = True
