"""Non-blocking telemetry emitter."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Union

from .events import MediaEvent


logger = logging.getLogger(__name__)

Consumer = Callable[[MediaEvent], Union[None, Awaitable[None]]]


@dataclass
class TelemetryEmitter:
    """
    Hands media events to export consumers off the resolution path.

    Events go into a bounded asyncio queue drained by ``process_loop``.
    When the queue is full new events are dropped and counted; resolution
    never waits on telemetry export.
    """
    max_queue_size: int = 10000

    # Internal state
    _queue: asyncio.Queue | None = field(default=None, init=False)
    _consumers: list[Consumer] = field(default_factory=list, init=False)
    _emitted: int = field(default=0, init=False)
    _dropped: int = field(default=0, init=False)
    _errors: int = field(default=0, init=False)

    async def start(self) -> None:
        """Create the queue (call on startup, inside the running loop)."""
        self._queue = asyncio.Queue(maxsize=self.max_queue_size)
        logger.info(f"Telemetry emitter started (max_queue={self.max_queue_size})")

    async def stop(self) -> None:
        """Deliver whatever is still queued."""
        if self._queue:
            while not self._queue.empty():
                event = self._queue.get_nowait()
                await self._deliver(event)
        logger.info(f"Telemetry emitter stopped. Stats: {self.stats}")

    def add_consumer(self, consumer: Consumer) -> None:
        """Register a sync or async consumer; called from the processing loop."""
        self._consumers.append(consumer)

    def emit(self, event: MediaEvent) -> bool:
        """
        Queue an event without blocking.

        Returns True if queued, False if dropped.
        """
        if self._queue is None:
            self._dropped += 1
            return False

        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self._dropped += 1
            return False

        self._emitted += 1
        return True

    async def process_loop(self) -> None:
        """
        Drain the queue forever.

        Call this as a background task.
        """
        if self._queue is None:
            raise RuntimeError("Emitter not started")

        logger.info("Telemetry processing loop started")

        while True:
            try:
                event = await self._queue.get()
                await self._deliver(event)
                self._queue.task_done()
            except asyncio.CancelledError:
                logger.info("Telemetry processing loop cancelled")
                break
            except Exception as e:
                logger.error(f"Error processing telemetry event: {e}")
                self._errors += 1

    async def _deliver(self, event: MediaEvent) -> None:
        for consumer in self._consumers:
            try:
                result = consumer(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"Telemetry consumer error: {e}")
                self._errors += 1

    @property
    def queue_depth(self) -> int:
        return self._queue.qsize() if self._queue else 0

    @property
    def stats(self) -> dict:
        return {
            "emitted": self._emitted,
            "dropped": self._dropped,
            "errors": self._errors,
            "queue_depth": self.queue_depth,
            "consumers": len(self._consumers),
        }
