"""Telemetry - load statistics and non-blocking media event streaming."""

from .events import EventKind, MediaEvent
from .emitter import TelemetryEmitter
from .batcher import TelemetryBatcher, create_batched_consumer
from .recorder import TelemetryRecorder

__all__ = [
    "EventKind",
    "MediaEvent",
    "TelemetryEmitter",
    "TelemetryBatcher",
    "TelemetryRecorder",
    "create_batched_consumer",
]
