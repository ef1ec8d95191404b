"""Media resolution - turn a MediaAsset into one renderable image URL.

Flow:
1. Concurrent calls for the same asset/variant join one in-flight effort
2. A non-expired cache entry is returned immediately
3. Otherwise candidates are probed one at a time in priority order,
   retrying transient failures with exponential backoff
4. The winner is cached; durable-tier winners are queued for promotion
   to the fast tier in the background
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Iterable

from ..cache.store import CacheStore
from ..media.candidates import build_candidates
from ..media.content_hash import DEFAULT_GATEWAY
from ..media.types import (
    AttemptOutcome,
    AttemptRecord,
    CacheEntry,
    MediaAsset,
    ResolutionOptions,
    ResolvedImage,
    Tier,
    Variant,
    cache_key,
)
from ..promotion.promoter import TierPromoter
from ..telemetry.recorder import TelemetryRecorder
from .attempt import AttemptRunner, Probe
from .errors import AbortedError, AllSourcesExhaustedError, NoSourcesError, ResolutionError


logger = logging.getLogger(__name__)


@dataclass
class ResolutionContext:
    """
    Shared mutable state for resolutions, built once by the host application.

    Nothing outside the Resolver and TierPromoter touches these directly.
    """
    cache: CacheStore
    telemetry: TelemetryRecorder
    promoter: TierPromoter | None = None


@dataclass
class _InFlight:
    """One shared network effort and the callers waiting on it."""
    task: asyncio.Task
    abort: asyncio.Event
    waiters: int = 0


@dataclass
class Resolver:
    """
    Resolves media assets to image URLs.

    resolve() returns a ResolvedImage or raises one of the ResolutionError
    variants (NoSourcesError, AllSourcesExhaustedError, AbortedError).
    """
    context: ResolutionContext
    probe: Probe
    gateway: str = DEFAULT_GATEWAY
    defaults: ResolutionOptions = field(default_factory=ResolutionOptions)

    runner: AttemptRunner = field(init=False)
    _in_flight: dict[str, _InFlight] = field(default_factory=dict, init=False)

    def __post_init__(self):
        self.runner = AttemptRunner(probe=self.probe, telemetry=self.context.telemetry)

    async def resolve(
        self,
        asset: MediaAsset,
        options: ResolutionOptions | None = None,
        *,
        variant: Variant = Variant.STANDARD,
        abort: asyncio.Event | None = None,
    ) -> ResolvedImage:
        """
        Resolve an asset for a display variant.

        ``abort`` stops this caller's wait; the shared network effort is
        aborted once no caller is waiting on it any more.
        """
        if not asset.has_sources:
            raise NoSourcesError(asset.entity_id)
        if abort is not None and abort.is_set():
            raise AbortedError(asset.entity_id)

        options = options or self.defaults
        key = cache_key(asset, variant)

        flight = self._in_flight.get(key)
        if flight is None:
            hit = self._from_cache(key, asset)
            if hit is not None:
                return hit
            flight = self._start(key, asset, variant, options)
        else:
            logger.debug(f"Joining in-flight resolution for {key}")

        return await self._wait(flight, asset, abort)

    async def preload(
        self,
        assets: Iterable[MediaAsset],
        options: ResolutionOptions | None = None,
        *,
        variant: Variant = Variant.STANDARD,
    ) -> dict[str, ResolvedImage | ResolutionError]:
        """
        Resolve many assets concurrently (e.g. a page of cards).

        Failures are returned in place of results rather than raised.
        """
        assets = list(assets)
        results = await asyncio.gather(
            *(self.resolve(asset, options, variant=variant) for asset in assets),
            return_exceptions=True,
        )

        out: dict[str, ResolvedImage | ResolutionError] = {}
        for asset, result in zip(assets, results):
            if isinstance(result, BaseException) and not isinstance(result, ResolutionError):
                raise result
            out[asset.entity_id] = result
        return out

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def _from_cache(self, key: str, asset: MediaAsset) -> ResolvedImage | None:
        start = time.perf_counter()
        entry = self.context.cache.get(key)
        if entry is None:
            return None

        elapsed_ms = (time.perf_counter() - start) * 1000
        self.context.telemetry.record_resolution(
            cache_key=key,
            entity_id=asset.entity_id,
            success=True,
            from_cache=True,
            load_time_ms=elapsed_ms,
            tier=entry.resolved_tier,
        )
        return ResolvedImage(
            url=entry.url,
            tier=entry.resolved_tier,
            from_cache=True,
            load_time_ms=elapsed_ms,
        )

    def _start(
        self,
        key: str,
        asset: MediaAsset,
        variant: Variant,
        options: ResolutionOptions,
    ) -> _InFlight:
        abort = asyncio.Event()
        task = asyncio.create_task(self._resolve_from_sources(key, asset, variant, options, abort))
        flight = _InFlight(task=task, abort=abort)
        self._in_flight[key] = flight
        task.add_done_callback(lambda t: self._release(key, flight, t))
        return flight

    def _release(self, key: str, flight: _InFlight, task: asyncio.Task) -> None:
        if self._in_flight.get(key) is flight:
            del self._in_flight[key]
        # Every waiter may have detached; consume the outcome so it is not reported as lost
        if not task.cancelled():
            task.exception()

    async def _wait(
        self,
        flight: _InFlight,
        asset: MediaAsset,
        abort: asyncio.Event | None,
    ) -> ResolvedImage:
        flight.waiters += 1
        try:
            if abort is None:
                return await asyncio.shield(flight.task)

            abort_wait = asyncio.ensure_future(abort.wait())
            try:
                done, _ = await asyncio.wait(
                    {flight.task, abort_wait}, return_when=asyncio.FIRST_COMPLETED,
                )
            finally:
                abort_wait.cancel()

            if flight.task in done:
                return flight.task.result()
            raise AbortedError(asset.entity_id)
        finally:
            flight.waiters -= 1
            if flight.waiters == 0 and not flight.task.done():
                flight.abort.set()

    async def _resolve_from_sources(
        self,
        key: str,
        asset: MediaAsset,
        variant: Variant,
        options: ResolutionOptions,
        abort: asyncio.Event,
    ) -> ResolvedImage:
        start = time.perf_counter()

        promoter = self.context.promoter
        if promoter is not None:
            asset = promoter.apply_promoted(asset)

        candidates = build_candidates(
            asset,
            variant,
            max_sources=options.max_sources,
            include_durable_tier=options.include_durable_tier,
            gateway=self.gateway,
        )
        if not candidates:
            raise NoSourcesError(asset.entity_id)

        attempts: list[AttemptRecord] = []
        for source in candidates:
            retries = 0
            while True:
                record = await self.runner.run(
                    source, options.timeout_ms_for(source.tier), abort, cache_key=key,
                )
                attempts.append(record)

                if record.outcome is AttemptOutcome.SUCCESS:
                    return await self._succeed(key, asset, record, attempts, options, start)
                if record.outcome is AttemptOutcome.ABORTED:
                    logger.info(f"Resolution of {key} aborted after {len(attempts)} attempts")
                    raise AbortedError(asset.entity_id, tuple(attempts))
                if record.outcome is AttemptOutcome.NOT_FOUND or retries >= options.max_retries:
                    break

                delay_ms = options.backoff_ms(retries)
                retries += 1
                logger.debug(
                    f"Retrying {source.tier.value} for {key} in {delay_ms}ms "
                    f"({retries}/{options.max_retries})"
                )
                if await self._backoff(delay_ms, abort):
                    raise AbortedError(asset.entity_id, tuple(attempts))

        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.warning(
            f"All sources exhausted for {key}: "
            + ", ".join(f"{a.source.tier.value}={a.outcome.value}" for a in attempts)
        )
        self.context.telemetry.record_resolution(
            cache_key=key,
            entity_id=asset.entity_id,
            success=False,
            load_time_ms=elapsed_ms,
            attempt_count=len(attempts),
            error_message="all sources exhausted",
        )
        raise AllSourcesExhaustedError(asset.entity_id, tuple(attempts))

    async def _succeed(
        self,
        key: str,
        asset: MediaAsset,
        winner: AttemptRecord,
        attempts: list[AttemptRecord],
        options: ResolutionOptions,
        start: float,
    ) -> ResolvedImage:
        source = winner.source
        now = self.context.cache.clock()
        await self.context.cache.put(key, CacheEntry(
            key=key,
            asset_id=asset.entity_id,
            url=source.url,
            resolved_tier=source.tier,
            created_at=now,
            last_accessed_at=now,
            ttl_ms=options.ttl_ms,
        ))

        promoter = self.context.promoter
        if source.tier is Tier.DURABLE and promoter is not None:
            promoter.promote(asset)

        elapsed_ms = (time.perf_counter() - start) * 1000
        self.context.telemetry.record_resolution(
            cache_key=key,
            entity_id=asset.entity_id,
            success=True,
            load_time_ms=elapsed_ms,
            tier=source.tier,
            attempt_count=len(attempts),
        )
        logger.debug(f"Resolved {key} -> {source.tier.value} in {elapsed_ms:.1f}ms")

        return ResolvedImage(
            url=source.url,
            tier=source.tier,
            from_cache=False,
            load_time_ms=elapsed_ms,
            attempts=tuple(attempts),
        )

    @staticmethod
    async def _backoff(delay_ms: int, abort: asyncio.Event) -> bool:
        """Sleep before a retry. Returns True if aborted meanwhile."""
        try:
            await asyncio.wait_for(abort.wait(), timeout=delay_ms / 1000)
            return True
        except asyncio.TimeoutError:
            return False
