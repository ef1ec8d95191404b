"""Telemetry sinks - destinations for media events."""

from .base import TelemetrySink
from .console import ConsoleSink
from .file import FileSink, RotatingFileSink
from .zmq import ZmqSink

__all__ = [
    "TelemetrySink",
    "ConsoleSink",
    "FileSink",
    "RotatingFileSink",
    "ZmqSink",
    "create_sink",
]


def create_sink(sink_type: str, sink_config: dict | None = None) -> TelemetrySink:
    """Build a sink from its configured type name."""
    sink_config = sink_config or {}
    if sink_type == "file":
        return RotatingFileSink(**sink_config)
    if sink_type == "zmq":
        return ZmqSink(**sink_config)
    return ConsoleSink(**sink_config)
