"""Background promotion of durable-tier images into the fast tier."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from ..cache.store import CacheStore
from ..media.content_hash import extract_hash
from ..media.types import MediaAsset, Tier
from ..telemetry.recorder import TelemetryRecorder
from .storage import FastTierStore, GatewayFetcher, TransferError


logger = logging.getLogger(__name__)


class TransferState(str, Enum):
    IDLE = "idle"
    IN_FLIGHT = "in_flight"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class TransferTask:
    """State of one asset's promotion."""
    asset_key: str
    state: TransferState = TransferState.IDLE
    started_at: float = 0.0
    finished_at: float | None = None
    fast_tier_url: str | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "asset_key": self.asset_key,
            "state": self.state.value,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "fast_tier_url": self.fast_tier_url,
            "error": self.error,
        }


@dataclass
class TierPromoter:
    """
    Copies images found only in the durable tier into the fast tier.

    promote() never blocks and never raises: each transfer runs as its own
    task bounded by ``timeout_seconds``. At most one transfer per asset key
    is in flight; completed task records are kept for ``retention_seconds``
    so that repeated durable-tier wins don't start duplicate transfers.
    A failed record is replaced by the next promote() call.

    On success the asset's durable-tier cache entries are repointed to the
    new fast-tier URL (thumbnail entries keep their own URL), and the URL
    is remembered so later candidate lists try the fast tier first.
    """
    store: FastTierStore
    fetcher: GatewayFetcher
    cache: CacheStore | None = None
    telemetry: TelemetryRecorder | None = None

    timeout_seconds: float = 30.0
    retention_seconds: float = 300.0
    max_promoted_urls: int = 10000
    clock: Callable[[], float] = time.monotonic

    _tasks: dict[str, TransferTask] = field(default_factory=dict, init=False)
    _running: set[asyncio.Task] = field(default_factory=set, init=False)
    _promoted: OrderedDict[str, str] = field(default_factory=OrderedDict, init=False)
    _transfers_started: int = field(default=0, init=False)

    def promote(self, asset: MediaAsset) -> None:
        """Schedule a transfer for the asset (fire-and-forget, idempotent)."""
        key = asset.entity_id
        self._purge_finished()

        existing = self._tasks.get(key)
        if existing is not None and existing.state in (TransferState.IN_FLIGHT, TransferState.COMPLETED):
            logger.debug(f"Promotion for {key} already {existing.state.value}, skipping")
            return

        content_hash = extract_hash(asset.content_hash or "") or (asset.content_hash or "").strip()
        if not content_hash:
            logger.debug(f"Asset {key} has no content hash, nothing to promote")
            return

        record = TransferTask(asset_key=key, state=TransferState.IN_FLIGHT, started_at=self.clock())
        self._tasks[key] = record
        self._transfers_started += 1

        task = asyncio.create_task(self._transfer(record, content_hash))
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    def status(self, asset_key: str) -> TransferState:
        self._purge_finished()
        record = self._tasks.get(asset_key)
        return record.state if record is not None else TransferState.IDLE

    def task(self, asset_key: str) -> TransferTask | None:
        self._purge_finished()
        return self._tasks.get(asset_key)

    def promoted_url(self, asset_key: str) -> str | None:
        url = self._promoted.get(asset_key)
        if url is not None:
            self._promoted.move_to_end(asset_key)
        return url

    def apply_promoted(self, asset: MediaAsset) -> MediaAsset:
        """Asset with its promoted fast-tier URL filled in, if there is one."""
        url = self.promoted_url(asset.entity_id)
        if url is None or url == asset.fast_tier_url:
            return asset
        return asset.with_fast_tier(url)

    async def drain(self) -> None:
        """Wait for every running transfer (shutdown, tests)."""
        while self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)

    @property
    def stats(self) -> dict:
        states = {s.value: 0 for s in TransferState if s is not TransferState.IDLE}
        for record in self._tasks.values():
            states[record.state.value] += 1
        return {
            "transfers_started": self._transfers_started,
            "running": len(self._running),
            "tracked": states,
            "promoted_urls": len(self._promoted),
        }

    async def _transfer(self, record: TransferTask, content_hash: str) -> None:
        start = time.perf_counter()
        key = record.asset_key
        try:
            url = await asyncio.wait_for(self._copy(key, content_hash), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            self._fail(record, f"timed out after {self.timeout_seconds}s", start)
            return
        except TransferError as e:
            self._fail(record, str(e), start)
            return
        except Exception as e:
            logger.exception(f"Unexpected promotion failure for {key}")
            self._fail(record, f"{type(e).__name__}: {e}", start)
            return

        self._remember(key, url)
        if self.cache is not None:
            updated = await self.cache.repoint(key, url, Tier.FAST, from_tier=Tier.DURABLE)
            logger.debug(f"Repointed {updated} cache entries for {key}")

        record.state = TransferState.COMPLETED
        record.fast_tier_url = url
        record.finished_at = self.clock()
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(f"Promoted {key} to fast tier in {duration_ms:.0f}ms: {url}")

        if self.telemetry is not None:
            self.telemetry.record_promotion(entity_id=key, success=True, duration_ms=duration_ms, url=url)

    async def _copy(self, key: str, content_hash: str) -> str:
        blob = await self.fetcher.fetch(content_hash)
        return await self.store.upload(key, blob)

    def _fail(self, record: TransferTask, error: str, start: float) -> None:
        record.state = TransferState.FAILED
        record.error = error
        record.finished_at = self.clock()
        duration_ms = (time.perf_counter() - start) * 1000
        logger.warning(f"Promotion of {record.asset_key} failed: {error}")

        if self.telemetry is not None:
            self.telemetry.record_promotion(
                entity_id=record.asset_key, success=False, duration_ms=duration_ms, error_message=error,
            )

    def _remember(self, key: str, url: str) -> None:
        self._promoted[key] = url
        self._promoted.move_to_end(key)
        while len(self._promoted) > self.max_promoted_urls:
            self._promoted.popitem(last=False)

    def _purge_finished(self) -> None:
        cutoff = self.clock() - self.retention_seconds
        stale = [
            key for key, record in self._tasks.items()
            if record.finished_at is not None and record.finished_at <= cutoff
        ]
        for key in stale:
            del self._tasks[key]
