"""In-process aggregation of media load metrics."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..media.types import AttemptOutcome, AttemptRecord, Tier
from .emitter import TelemetryEmitter
from .events import EventKind, MediaEvent


logger = logging.getLogger(__name__)


@dataclass
class _TierCounters:
    attempts: int = 0
    successes: int = 0
    total_ms: float = 0.0


@dataclass
class TelemetryRecorder:
    """
    Records per-attempt and per-resolution facts and summarises them.

    Counting is purely additive and never affects resolution. When an
    emitter is attached every fact is also forwarded as a MediaEvent for
    export.
    """
    emitter: TelemetryEmitter | None = None

    _tiers: dict[Tier, _TierCounters] = field(default_factory=dict, init=False)
    _outcomes: dict[AttemptOutcome, int] = field(default_factory=dict, init=False)

    # Resolutions (cache hits included)
    _loads: int = field(default=0, init=False)
    _successes: int = field(default=0, init=False)
    _cache_hits: int = field(default=0, init=False)
    _network_load_ms: float = field(default=0.0, init=False)
    _network_loads: int = field(default=0, init=False)

    # Promotions
    _promotions_completed: int = field(default=0, init=False)
    _promotions_failed: int = field(default=0, init=False)

    def record(self, attempt: AttemptRecord, *, cache_key: str | None = None) -> None:
        """Record one probe."""
        counters = self._tiers.setdefault(attempt.source.tier, _TierCounters())
        counters.attempts += 1
        counters.total_ms += attempt.duration_ms
        if attempt.outcome is AttemptOutcome.SUCCESS:
            counters.successes += 1
        self._outcomes[attempt.outcome] = self._outcomes.get(attempt.outcome, 0) + 1

        self._emit(MediaEvent.create(
            EventKind.ATTEMPT,
            outcome=attempt.outcome.value,
            latency_ms=attempt.duration_ms,
            cache_key=cache_key,
            tier=attempt.source.tier.value,
            url=attempt.source.url,
            error_message=attempt.error,
        ))

    def record_resolution(
        self,
        *,
        cache_key: str,
        entity_id: str,
        success: bool,
        from_cache: bool = False,
        load_time_ms: float = 0.0,
        tier: Tier | None = None,
        attempt_count: int = 0,
        error_message: str | None = None,
    ) -> None:
        """Record the end of one resolve() call."""
        self._loads += 1
        if success:
            self._successes += 1
        if from_cache:
            self._cache_hits += 1
        elif success:
            self._network_loads += 1
            self._network_load_ms += load_time_ms

        self._emit(MediaEvent.create(
            EventKind.CACHE_HIT if from_cache else EventKind.RESOLUTION,
            outcome="success" if success else "failed",
            latency_ms=load_time_ms,
            cache_key=cache_key,
            entity_id=entity_id,
            tier=tier.value if tier else None,
            attempt_count=attempt_count,
            error_message=error_message,
        ))

    def record_promotion(
        self,
        *,
        entity_id: str,
        success: bool,
        duration_ms: float,
        url: str | None = None,
        error_message: str | None = None,
    ) -> None:
        if success:
            self._promotions_completed += 1
        else:
            self._promotions_failed += 1

        self._emit(MediaEvent.create(
            EventKind.PROMOTION,
            outcome="success" if success else "failed",
            latency_ms=duration_ms,
            entity_id=entity_id,
            tier=Tier.FAST.value,
            url=url,
            error_message=error_message,
        ))

    def stats(self) -> dict:
        """Aggregate view for dashboards and debug overlays."""
        per_tier = {}
        per_tier_avg_ms = {}
        for tier, c in self._tiers.items():
            per_tier[tier.value] = round(c.successes / c.attempts, 4) if c.attempts else 0.0
            per_tier_avg_ms[tier.value] = round(c.total_ms / c.attempts, 2) if c.attempts else 0.0

        return {
            "total_loads": self._loads,
            "success_rate": round(self._successes / self._loads, 4) if self._loads else 0.0,
            "avg_load_time_ms": (
                round(self._network_load_ms / self._network_loads, 2) if self._network_loads else 0.0
            ),
            "cache_hit_rate": round(self._cache_hits / self._loads, 4) if self._loads else 0.0,
            "per_tier_success_rate": per_tier,
            "per_tier_avg_attempt_ms": per_tier_avg_ms,
            "attempt_outcomes": {o.value: n for o, n in self._outcomes.items()},
            "promotions": {
                "completed": self._promotions_completed,
                "failed": self._promotions_failed,
            },
        }

    def reset(self) -> None:
        self._tiers.clear()
        self._outcomes.clear()
        self._loads = self._successes = self._cache_hits = self._network_loads = 0
        self._network_load_ms = 0.0
        self._promotions_completed = self._promotions_failed = 0

    def _emit(self, event: MediaEvent) -> None:
        if self.emitter is not None:
            self.emitter.emit(event)
