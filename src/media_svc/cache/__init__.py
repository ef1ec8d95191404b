"""Caching layer for resolved media URLs."""

from .base import CacheBackend
from .redis import RedisCacheBackend
from .store import CacheStore

__all__ = [
    "CacheBackend",
    "CacheStore",
    "RedisCacheBackend",
]
