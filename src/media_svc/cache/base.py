"""Persistence backend interface for the resolved-URL cache."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..media.types import CacheEntry


class CacheBackend(ABC):
    """
    Durable storage behind the in-memory CacheStore.

    Implementations report failure by returning False / None rather than
    raising; the store degrades to memory-only when that happens.
    """

    @abstractmethod
    async def connect(self) -> bool:
        """Open the backend. Returns True if usable."""
        ...

    @abstractmethod
    async def save(self, entry: CacheEntry, ttl_seconds: float) -> bool:
        """Persist one entry. Returns True if stored."""
        ...

    @abstractmethod
    async def load_all(self) -> list[CacheEntry] | None:
        """All persisted entries, or None if the backend is unavailable."""
        ...

    async def delete(self, key: str) -> bool:
        return False

    async def close(self) -> None:
        pass

    @property
    def is_connected(self) -> bool:
        return False

    async def health_check(self) -> dict:
        return {"status": "connected" if self.is_connected else "disconnected"}
