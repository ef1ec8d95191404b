"""Batching worker between the emitter and a telemetry sink."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from .events import MediaEvent


logger = logging.getLogger(__name__)


@dataclass
class TelemetryBatcher:
    """
    Collects media events and flushes them to a sink in batches.

    A batch is flushed when it reaches ``batch_size`` or when
    ``flush_interval_seconds`` has passed since the last flush. Batches that
    fail to send are dropped and counted.
    """
    batch_size: int = 500
    flush_interval_seconds: float = 2.0

    sink: Callable[[list[MediaEvent]], Awaitable[None]] | None = None

    # Internal state
    _buffer: list[MediaEvent] = field(default_factory=list, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)
    _last_flush: float = field(default_factory=time.monotonic, init=False)
    _running: bool = field(default=False, init=False)
    _batches_sent: int = field(default=0, init=False)
    _events_sent: int = field(default=0, init=False)
    _flush_errors: int = field(default=0, init=False)

    async def add(self, event: MediaEvent) -> None:
        async with self._lock:
            self._buffer.append(event)
            if len(self._buffer) >= self.batch_size:
                await self._flush_locked()

    async def flush(self) -> None:
        """Force flush the current batch."""
        async with self._lock:
            await self._flush_locked()

    async def _flush_locked(self) -> None:
        if not self._buffer:
            return

        batch, self._buffer = self._buffer, []
        self._last_flush = time.monotonic()

        if self.sink is None:
            logger.warning(f"No telemetry sink configured, discarding {len(batch)} events")
            return

        try:
            await self.sink(batch)
        except Exception as e:
            logger.error(f"Failed to flush telemetry batch of {len(batch)}: {e}")
            self._flush_errors += 1
            return

        self._batches_sent += 1
        self._events_sent += len(batch)

    async def timer_loop(self) -> None:
        """Flush on interval so events don't sit in the buffer during quiet periods."""
        self._running = True
        logger.info(f"Telemetry batcher timer started (interval={self.flush_interval_seconds}s)")

        while self._running:
            try:
                await asyncio.sleep(self.flush_interval_seconds)
                async with self._lock:
                    elapsed = time.monotonic() - self._last_flush
                    if self._buffer and elapsed >= self.flush_interval_seconds:
                        await self._flush_locked()
            except asyncio.CancelledError:
                logger.info("Telemetry batcher timer cancelled")
                break
            except Exception as e:
                logger.error(f"Batcher timer error: {e}")

    async def stop(self) -> None:
        """Stop the batcher and flush remaining events."""
        self._running = False
        await self.flush()
        logger.info(f"Telemetry batcher stopped. Stats: {self.stats}")

    @property
    def buffer_size(self) -> int:
        return len(self._buffer)

    @property
    def stats(self) -> dict:
        return {
            "batches_sent": self._batches_sent,
            "events_sent": self._events_sent,
            "flush_errors": self._flush_errors,
            "buffer_size": self.buffer_size,
        }


def create_batched_consumer(batcher: TelemetryBatcher) -> Callable[[MediaEvent], Awaitable[None]]:
    """Emitter consumer that feeds events into a batcher."""
    async def consumer(event: MediaEvent) -> None:
        await batcher.add(event)

    return consumer
