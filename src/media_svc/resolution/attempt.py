"""Probe one candidate source under a deadline."""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

import httpx

from ..media.types import AttemptOutcome, AttemptRecord, CandidateSource
from ..telemetry.recorder import TelemetryRecorder


logger = logging.getLogger(__name__)

# Servers that refuse HEAD answer with one of these
_HEAD_UNSUPPORTED = {405, 501}

# Served but not renderable as an image
_ACCEPTED_NON_IMAGE_TYPES = {"application/octet-stream", "binary/octet-stream"}


@dataclass(frozen=True, slots=True)
class ProbeResult:
    """Classified response of a probe."""
    outcome: AttemptOutcome
    error: str | None = None
    status_code: int | None = None


class Probe(ABC):
    """Checks whether a URL serves a loadable image."""

    @abstractmethod
    async def check(self, url: str, timeout_seconds: float) -> ProbeResult:
        """
        Probe a URL.

        Must classify every transport failure into a ProbeResult rather than
        raise. The AttemptRunner enforces the deadline independently.
        """
        ...

    async def close(self) -> None:
        pass


def classify_response(response: httpx.Response, require_image: bool = True) -> ProbeResult:
    """Map an HTTP response onto the attempt outcome taxonomy."""
    status = response.status_code

    if 200 <= status < 300:
        if require_image:
            content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
            if content_type and not content_type.startswith("image/") \
                    and content_type not in _ACCEPTED_NON_IMAGE_TYPES:
                return ProbeResult(AttemptOutcome.NOT_FOUND, f"not an image ({content_type})", status)
        return ProbeResult(AttemptOutcome.SUCCESS, None, status)

    if status == 408:
        return ProbeResult(AttemptOutcome.TIMEOUT, "HTTP 408", status)
    if status == 429 or status >= 500:
        return ProbeResult(AttemptOutcome.NETWORK_ERROR, f"HTTP {status}", status)
    # 404/410 and every other client error: the image is not there
    return ProbeResult(AttemptOutcome.NOT_FOUND, f"HTTP {status}", status)


class HttpProbe(Probe):
    """
    HEAD-based probe over httpx.

    Falls back to a single-byte ranged GET when the server rejects HEAD;
    the body is never read.
    """

    def __init__(self, client: httpx.AsyncClient | None = None, require_image: bool = True):
        self._client = client or httpx.AsyncClient(follow_redirects=True)
        self._owns_client = client is None
        self.require_image = require_image

    async def check(self, url: str, timeout_seconds: float) -> ProbeResult:
        try:
            response = await self._client.head(url, timeout=timeout_seconds)
            if response.status_code in _HEAD_UNSUPPORTED:
                async with self._client.stream(
                    "GET", url, headers={"Range": "bytes=0-0"}, timeout=timeout_seconds,
                ) as response:
                    return classify_response(response, self.require_image)
            return classify_response(response, self.require_image)
        except httpx.TimeoutException as e:
            return ProbeResult(AttemptOutcome.TIMEOUT, f"timeout: {e!r}")
        except httpx.InvalidURL as e:
            return ProbeResult(AttemptOutcome.NOT_FOUND, f"invalid url: {e}")
        except httpx.HTTPError as e:
            return ProbeResult(AttemptOutcome.NETWORK_ERROR, f"{type(e).__name__}: {e}")

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


@dataclass
class AttemptRunner:
    """
    Runs one probe against one candidate, racing it with a deadline and
    the caller's abort signal.

    Produces exactly one AttemptRecord per call and records it with
    telemetry.
    """
    probe: Probe
    telemetry: TelemetryRecorder | None = None
    clock: Callable[[], float] = time.time

    async def run(
        self,
        source: CandidateSource,
        timeout_ms: int,
        abort: asyncio.Event | None = None,
        *,
        cache_key: str | None = None,
    ) -> AttemptRecord:
        started = self.clock()

        if abort is not None and abort.is_set():
            result = ProbeResult(AttemptOutcome.ABORTED, "aborted before probe")
        else:
            result = await self._race(source.url, timeout_ms, abort)

        record = AttemptRecord(
            source=source,
            started_at=started,
            ended_at=self.clock(),
            outcome=result.outcome,
            error=result.error,
        )
        logger.debug(
            f"Probe {source.tier.value} {source.url} -> {record.outcome.value} "
            f"({record.duration_ms:.1f}ms)"
        )

        if self.telemetry is not None:
            self.telemetry.record(record, cache_key=cache_key)
        return record

    async def _race(self, url: str, timeout_ms: int, abort: asyncio.Event | None) -> ProbeResult:
        timeout = timeout_ms / 1000
        probe_task = asyncio.ensure_future(self.probe.check(url, timeout))
        abort_task = asyncio.ensure_future(abort.wait()) if abort is not None else None
        waiting = {probe_task} if abort_task is None else {probe_task, abort_task}

        try:
            done, _ = await asyncio.wait(waiting, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if abort_task is not None:
                abort_task.cancel()
            if not probe_task.done():
                probe_task.cancel()

        if probe_task in done:
            try:
                return probe_task.result()
            except Exception as e:
                logger.warning(f"Probe raised for {url}: {e!r}")
                return ProbeResult(AttemptOutcome.NETWORK_ERROR, f"{type(e).__name__}: {e}")

        await asyncio.gather(probe_task, return_exceptions=True)
        if abort_task is not None and abort_task in done:
            return ProbeResult(AttemptOutcome.ABORTED, "aborted by caller")
        return ProbeResult(AttemptOutcome.TIMEOUT, f"no response within {timeout_ms}ms")
