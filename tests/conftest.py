"""Shared test fixtures for the media resolution service.

Network access is replaced by a scripted probe and httpx.MockTransport,
so every test is hermetic.
"""

from __future__ import annotations

import asyncio

import httpx
import pytest

from media_svc.cache.store import CacheStore
from media_svc.media.types import AttemptOutcome, CacheEntry, ResolutionOptions, Tier
from media_svc.promotion.storage import FastTierStore, GatewayFetcher, MediaBlob, TransferError
from media_svc.resolution.attempt import Probe, ProbeResult
from media_svc.resolution.resolver import ResolutionContext, Resolver
from media_svc.telemetry.recorder import TelemetryRecorder


GATEWAY = "https://gw.test/ipfs"
CID = "QmYwAPJzv5CZsnA625s3Xf2nemtYgPpHdWEz79ojWnPbdG"


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedProbe(Probe):
    """
    Probe that answers from a per-URL script.

    Each URL maps to a list of outcomes consumed in order; the last one
    repeats. Unknown URLs are NOT_FOUND.
    """

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.scripts: dict[str, list[AttemptOutcome]] = {}
        self.calls: list[str] = []
        self.closed = False

    def script(self, url: str, *outcomes: AttemptOutcome) -> None:
        self.scripts[url] = list(outcomes)

    def count(self, url: str) -> int:
        return self.calls.count(url)

    async def check(self, url: str, timeout_seconds: float) -> ProbeResult:
        self.calls.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)

        script = self.scripts.get(url)
        if not script:
            return ProbeResult(AttemptOutcome.NOT_FOUND, "HTTP 404", 404)
        outcome = script.pop(0) if len(script) > 1 else script[0]
        if outcome is AttemptOutcome.SUCCESS:
            return ProbeResult(outcome, None, 200)
        return ProbeResult(outcome, f"scripted {outcome.value}")

    async def close(self) -> None:
        self.closed = True


class RecordingFastTierStore(FastTierStore):
    """Fast-tier store that keeps uploads in memory."""

    def __init__(self, fail: bool = False, delay: float = 0.0):
        self.fail = fail
        self.delay = delay
        self.uploads: list[tuple[str, MediaBlob]] = []

    async def upload(self, entity_id: str, blob: MediaBlob) -> str:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise TransferError("storage rejected upload")
        self.uploads.append((entity_id, blob))
        return f"https://fast.test/evermarks/{entity_id}/image.{blob.extension}"


def make_entry(
    key: str,
    clock: FakeClock,
    url: str | None = None,
    ttl_ms: int = 60_000,
    tier: Tier = Tier.FAST,
) -> CacheEntry:
    asset_id = key.split(":", 1)[0]
    return CacheEntry(
        key=key,
        asset_id=asset_id,
        url=url or f"https://fast.test/{asset_id}.jpg",
        resolved_tier=tier,
        created_at=clock(),
        last_accessed_at=clock(),
        ttl_ms=ttl_ms,
    )


def image_transport(status_code: int = 200, content_type: str = "image/png") -> httpx.MockTransport:
    """Transport that serves a tiny image for every request."""
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, content=b"\x89PNG....", headers={"content-type": content_type})

    return httpx.MockTransport(handler)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache() -> CacheStore:
    return CacheStore(max_entries=100)


@pytest.fixture
def telemetry() -> TelemetryRecorder:
    return TelemetryRecorder()


@pytest.fixture
def probe() -> ScriptedProbe:
    return ScriptedProbe()


@pytest.fixture
def fast_options() -> ResolutionOptions:
    """Default options with millisecond backoff so retries don't slow tests."""
    return ResolutionOptions(backoff_base_ms=1, backoff_cap_ms=5)


@pytest.fixture
def resolver(cache, telemetry, probe, fast_options) -> Resolver:
    context = ResolutionContext(cache=cache, telemetry=telemetry)
    return Resolver(context=context, probe=probe, gateway=GATEWAY, defaults=fast_options)


@pytest.fixture
def fast_tier_store() -> RecordingFastTierStore:
    return RecordingFastTierStore()


@pytest.fixture
def fetcher() -> GatewayFetcher:
    client = httpx.AsyncClient(transport=image_transport())
    return GatewayFetcher(gateway=GATEWAY, fallbacks=(), client=client)
