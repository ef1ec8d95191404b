"""Core media resolution types."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum


class Tier(str, Enum):
    """Storage tier a candidate image lives in.

    Ordered roughly by how quickly clients can load from it:
        FAST      -> primary object storage
        THUMBNAIL -> pre-rendered small image in object storage
        LEGACY    -> older processed-image URL kept for backwards compatibility
        DURABLE   -> content-addressed network behind a gateway (slowest)
    """
    FAST = "fast"
    THUMBNAIL = "thumbnail"
    LEGACY = "legacy"
    DURABLE = "durable"


class Variant(str, Enum):
    """Display context the image is resolved for."""
    HERO = "hero"
    STANDARD = "standard"
    COMPACT = "compact"
    LIST = "list"
    THUMBNAIL = "thumbnail"

    @property
    def is_small(self) -> bool:
        """Small renderings are served from the thumbnail when one exists."""
        return self in (Variant.COMPACT, Variant.LIST, Variant.THUMBNAIL)


class AttemptOutcome(str, Enum):
    """Classified result of a single probe."""
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    ABORTED = "aborted"

    @property
    def is_retryable(self) -> bool:
        return self in (AttemptOutcome.TIMEOUT, AttemptOutcome.NETWORK_ERROR)


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


@dataclass(frozen=True, slots=True)
class MediaAsset:
    """
    Where an entity's image may be found.

    Built by the content layer from persisted fields on every render/query.
    Any of the hints may be missing; resolution needs at least one.
    """
    entity_id: str
    fast_tier_url: str | None = None
    thumbnail_url: str | None = None
    legacy_url: str | None = None
    content_hash: str | None = None
    prefer_thumbnail: bool = False

    @property
    def has_sources(self) -> bool:
        return not all(
            _blank(hint) for hint in (
                self.fast_tier_url,
                self.thumbnail_url,
                self.legacy_url,
                self.content_hash,
            )
        )

    def with_fast_tier(self, url: str) -> MediaAsset:
        """Copy of this asset pointing at a (newly promoted) fast-tier URL."""
        return replace(self, fast_tier_url=url)


@dataclass(frozen=True, slots=True)
class CandidateSource:
    """One URL/tier combination the resolver may attempt. Lower priority first."""
    url: str
    tier: Tier
    priority: int


@dataclass(frozen=True, slots=True)
class AttemptRecord:
    """Outcome of probing one candidate once."""
    source: CandidateSource
    started_at: float
    ended_at: float
    outcome: AttemptOutcome
    error: str | None = None

    @property
    def duration_ms(self) -> float:
        return (self.ended_at - self.started_at) * 1000

    def to_dict(self) -> dict:
        return {
            "url": self.source.url,
            "tier": self.source.tier.value,
            "priority": self.source.priority,
            "outcome": self.outcome.value,
            "duration_ms": round(self.duration_ms, 2),
            "error": self.error,
        }


@dataclass(frozen=True)
class ResolvedImage:
    """Successful resolution - a URL the client can render."""
    url: str
    tier: Tier
    from_cache: bool
    load_time_ms: float = 0.0
    attempts: tuple[AttemptRecord, ...] = ()


# Defaults shared by ResolutionOptions and ResolutionConfig
DEFAULT_MAX_SOURCES = 3
DEFAULT_TIMEOUT_MS = 8000
MOBILE_TIMEOUT_MS = 5000
DEFAULT_MAX_RETRIES = 1
DEFAULT_TTL_MS = 24 * 60 * 60 * 1000
DEFAULT_BACKOFF_BASE_MS = 200
DEFAULT_BACKOFF_CAP_MS = 2000


@dataclass(frozen=True)
class ResolutionOptions:
    """Per-call knobs for a resolution."""
    max_sources: int = DEFAULT_MAX_SOURCES
    per_source_timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_retries: int = DEFAULT_MAX_RETRIES
    include_durable_tier: bool = True
    ttl_ms: int = DEFAULT_TTL_MS
    mobile_optimized: bool = False

    # Retry backoff: base * 2**retry, capped
    backoff_base_ms: int = DEFAULT_BACKOFF_BASE_MS
    backoff_cap_ms: int = DEFAULT_BACKOFF_CAP_MS

    @classmethod
    def default(cls) -> ResolutionOptions:
        return cls()

    @classmethod
    def mobile(cls) -> ResolutionOptions:
        """Bandwidth-conscious preset: fewer sources, shorter timeouts, no gateway."""
        return cls(
            max_sources=2,
            per_source_timeout_ms=MOBILE_TIMEOUT_MS,
            max_retries=1,
            include_durable_tier=False,
            mobile_optimized=True,
        )

    def timeout_ms_for(self, tier: Tier) -> int:
        """Deadline for one probe against the given tier (durable is capped on mobile)."""
        if self.mobile_optimized and tier is Tier.DURABLE:
            return min(self.per_source_timeout_ms, MOBILE_TIMEOUT_MS)
        return self.per_source_timeout_ms

    def backoff_ms(self, retry: int) -> int:
        """Delay before retry number ``retry`` (0-based)."""
        return min(self.backoff_base_ms * (2 ** retry), self.backoff_cap_ms)


@dataclass(slots=True)
class CacheEntry:
    """A resolved URL held by the CacheStore."""
    key: str
    asset_id: str
    url: str
    resolved_tier: Tier
    created_at: float
    last_accessed_at: float
    ttl_ms: int
    access_count: int = 0

    # Recency tick of the latest access (index bookkeeping)
    tick: int = field(default=0, compare=False)

    def is_expired(self, now: float) -> bool:
        return self.created_at + self.ttl_ms / 1000 <= now

    def expires_in(self, now: float) -> float:
        """Seconds until expiry (negative once expired)."""
        return self.created_at + self.ttl_ms / 1000 - now

    @property
    def estimated_size(self) -> int:
        """Rough in-memory footprint in bytes."""
        return 128 + len(self.key) + len(self.asset_id) + len(self.url)

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "asset_id": self.asset_id,
            "url": self.url,
            "resolved_tier": self.resolved_tier.value,
            "created_at": self.created_at,
            "last_accessed_at": self.last_accessed_at,
            "ttl_ms": self.ttl_ms,
            "access_count": self.access_count,
        }

    @classmethod
    def from_dict(cls, d: dict) -> CacheEntry:
        return cls(
            key=d["key"],
            asset_id=d["asset_id"],
            url=d["url"],
            resolved_tier=Tier(d["resolved_tier"]),
            created_at=d["created_at"],
            last_accessed_at=d.get("last_accessed_at", d["created_at"]),
            ttl_ms=d["ttl_ms"],
            access_count=d.get("access_count", 0),
        )


def cache_key(asset: MediaAsset, variant: Variant) -> str:
    """Cache/coalescing key: asset identity plus display variant."""
    return f"{asset.entity_id}:{variant.value}"
