"""Telemetry event types."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class EventKind(str, Enum):
    """What a telemetry event describes."""
    ATTEMPT = "attempt"          # one probe of one candidate
    RESOLUTION = "resolution"    # end of a network resolution (success or exhaustion)
    CACHE_HIT = "cache_hit"      # resolution served from the cache
    PROMOTION = "promotion"      # durable -> fast tier transfer finished


@dataclass(frozen=True, slots=True)
class MediaEvent:
    """
    A single media resolution event.

    Captures enough to answer:
    - which tiers are actually serving images ("where do loads come from")
    - how slow each tier is ("what should the timeouts be")
    - how often the cache saves a probe
    - whether promotions keep up with durable-tier traffic
    """
    event_id: str
    timestamp: datetime
    kind: EventKind

    # What was being resolved
    cache_key: str | None = None
    entity_id: str | None = None

    # Where
    tier: str | None = None
    url: str | None = None

    # Outcome: an AttemptOutcome value, or "success"/"failed" for resolutions
    outcome: str = "success"
    error_message: str | None = None

    # Performance
    latency_ms: float = 0.0
    attempt_count: int | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(cls, kind: EventKind, outcome: str, latency_ms: float = 0.0, **kwargs) -> MediaEvent:
        """Factory method with sensible defaults."""
        return cls(
            event_id=str(uuid.uuid4()),
            timestamp=datetime.now(timezone.utc),
            kind=kind,
            outcome=outcome,
            latency_ms=latency_ms,
            **kwargs,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "event_id": self.event_id,
            "timestamp": self.timestamp.isoformat(),
            "kind": self.kind.value,
            "cache_key": self.cache_key,
            "entity_id": self.entity_id,
            "tier": self.tier,
            "url": self.url,
            "outcome": self.outcome,
            "error_message": self.error_message,
            "latency_ms": self.latency_ms,
            "attempt_count": self.attempt_count,
            "metadata": self.metadata,
        }
