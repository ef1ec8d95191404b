"""Console sink for development/debugging."""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass

from ..events import MediaEvent
from .base import TelemetrySink


@dataclass
class ConsoleSink(TelemetrySink):
    """Writes media events to stdout/stderr."""
    stream: str = "stdout"  # stdout | stderr
    format: str = "compact"  # json | compact
    prefix: str = "[MEDIA] "

    async def send(self, events: list[MediaEvent]) -> None:
        out = sys.stdout if self.stream == "stdout" else sys.stderr

        for event in events:
            print(f"{self.prefix}{self._format_event(event)}", file=out)

    def _format_event(self, event: MediaEvent) -> str:
        if self.format == "json":
            return json.dumps(event.to_dict(), default=str)
        return (
            f"{event.timestamp.isoformat()} "
            f"{event.kind.value} "
            f"{event.cache_key or event.entity_id or '-'} "
            f"{event.tier or '-'} "
            f"{event.outcome} "
            f"{event.latency_ms:.1f}ms"
        )
