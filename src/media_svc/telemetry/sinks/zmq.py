"""ZeroMQ sink for streaming media events to downstream aggregators."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

import zmq
import zmq.asyncio

from ..events import MediaEvent
from .base import TelemetrySink


logger = logging.getLogger(__name__)


@dataclass
class ZmqSink(TelemetrySink):
    """
    Publishes events over ZeroMQ (PUB for fan-out, PUSH for work queues).

    Message format: "<topic> <json>".
    """
    endpoint: str = "tcp://*:5556"
    topic: str = "media"
    socket_type: str = "pub"  # pub | push
    high_water_mark: int = 10000

    _context: Any = field(default=None, init=False)
    _socket: Any = field(default=None, init=False)

    async def start(self) -> None:
        self._context = zmq.asyncio.Context()
        self._socket = self._context.socket(zmq.PUB if self.socket_type == "pub" else zmq.PUSH)
        self._socket.set_hwm(self.high_water_mark)
        self._socket.bind(self.endpoint)
        logger.info(f"ZMQ sink started on {self.endpoint} ({self.socket_type})")

    async def stop(self) -> None:
        if self._socket:
            self._socket.close()
            self._socket = None
        if self._context:
            self._context.term()
            self._context = None
        logger.info("ZMQ sink stopped")

    async def send(self, events: list[MediaEvent]) -> None:
        if not self._socket:
            logger.warning(f"ZMQ sink not started, dropping {len(events)} events")
            return

        for event in events:
            message = f"{self.topic} {json.dumps(event.to_dict(), default=str)}"
            try:
                await self._socket.send_string(message)
            except zmq.ZMQError as e:
                logger.error(f"ZMQ send error: {e}")

    async def health_check(self) -> bool:
        return self._socket is not None
