"""Redis persistence for resolved media URLs."""

from __future__ import annotations

import json
import logging
import time
from typing import Any

import redis.asyncio as redis

from ..config import RedisConfig
from ..media.types import CacheEntry
from .base import CacheBackend


logger = logging.getLogger(__name__)


class RedisCacheBackend(CacheBackend):
    """
    Redis-backed store for cache entries.

    Lets resolved URLs survive service restarts and be shared between
    instances. Entries carry a native Redis TTL so expiry needs no sweep here.

    Key format: {prefix}{cache_key}
    Value: JSON-serialized CacheEntry
    """

    def __init__(self, config: RedisConfig):
        self.config = config
        self._client: redis.Redis | None = None
        self._connected = False

    async def connect(self) -> bool:
        """Connect to Redis. Returns True if successful."""
        if not self.config.enabled:
            logger.info("Redis cache persistence disabled")
            return False

        try:
            self._client = redis.Redis(
                host=self.config.host,
                port=self.config.port,
                db=self.config.db,
                password=self.config.password,
                socket_timeout=self.config.socket_timeout,
                socket_connect_timeout=self.config.socket_connect_timeout,
                decode_responses=True,
            )

            await self._client.ping()
            self._connected = True
            logger.info(f"Connected to Redis at {self.config.host}:{self.config.port}")
            return True

        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            self._connected = False
            return False

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            self._connected = False
            logger.info("Redis connection closed")

    def _key(self, cache_key: str) -> str:
        return f"{self.config.prefix}{cache_key}"

    async def save(self, entry: CacheEntry, ttl_seconds: float) -> bool:
        if not self._connected or not self._client:
            return False

        ttl = int(ttl_seconds)
        if ttl <= 0:
            return True  # already expired; nothing worth keeping

        try:
            await self._client.setex(self._key(entry.key), ttl, json.dumps(entry.to_dict()))
            return True
        except Exception as e:
            logger.error(f"Redis set error for {entry.key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        if not self._connected or not self._client:
            return False

        try:
            await self._client.delete(self._key(key))
            return True
        except Exception as e:
            logger.error(f"Redis delete error for {key}: {e}")
            return False

    async def load_all(self) -> list[CacheEntry] | None:
        """Read every persisted entry under the prefix."""
        if not self._connected or not self._client:
            return None

        entries: list[CacheEntry] = []
        try:
            async for key in self._client.scan_iter(match=f"{self.config.prefix}*"):
                raw = await self._client.get(key)
                if raw is None:
                    continue
                try:
                    entries.append(CacheEntry.from_dict(json.loads(raw)))
                except (KeyError, ValueError) as e:
                    logger.warning(f"Skipping unreadable cache entry {key}: {e}")
            return entries
        except Exception as e:
            logger.error(f"Redis scan error: {e}")
            return None

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def health_check(self) -> dict[str, Any]:
        """Get health status of Redis connection."""
        if not self._connected or not self._client:
            return {
                "status": "disconnected",
                "enabled": self.config.enabled,
            }

        try:
            start = time.perf_counter()
            await self._client.ping()
            latency_ms = (time.perf_counter() - start) * 1000

            return {
                "status": "connected",
                "host": f"{self.config.host}:{self.config.port}",
                "latency_ms": round(latency_ms, 2),
            }
        except Exception as e:
            return {
                "status": "error",
                "error": str(e),
            }
