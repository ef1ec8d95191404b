"""File-based sinks for telemetry."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TextIO

from ..events import MediaEvent
from .base import TelemetrySink


@dataclass
class FileSink(TelemetrySink):
    """Appends events to a single JSONL file."""
    path: str
    encoding: str = "utf-8"

    _file: TextIO | None = field(default=None, init=False)

    async def start(self) -> None:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._file = open(self.path, "a", encoding=self.encoding)

    async def stop(self) -> None:
        if self._file:
            self._file.close()
            self._file = None

    async def send(self, events: list[MediaEvent]) -> None:
        if not self._file:
            await self.start()

        for event in events:
            self._file.write(json.dumps(event.to_dict(), default=str) + "\n")
        self._file.flush()


@dataclass
class RotatingFileSink(TelemetrySink):
    """
    Writes events to JSONL files rotated by time and size.

    ``path_pattern`` may contain strftime codes; when a file grows past
    ``max_bytes`` a numeric suffix is added.
    """
    path_pattern: str = "media-%Y%m%d-%H.jsonl"
    directory: str = "./telemetry"
    max_bytes: int = 50 * 1024 * 1024  # 0 = no size limit
    encoding: str = "utf-8"

    _current_path: str = field(default="", init=False)
    _current_file: TextIO | None = field(default=None, init=False)
    _current_size: int = field(default=0, init=False)

    async def start(self) -> None:
        Path(self.directory).mkdir(parents=True, exist_ok=True)

    async def stop(self) -> None:
        if self._current_file:
            self._current_file.close()
            self._current_file = None

    async def send(self, events: list[MediaEvent]) -> None:
        expected_path = os.path.join(self.directory, datetime.now().strftime(self.path_pattern))

        if expected_path != self._current_path or self._needs_size_rotation():
            self._rotate(expected_path)

        for event in events:
            line = json.dumps(event.to_dict(), default=str) + "\n"
            self._current_file.write(line)
            self._current_size += len(line.encode(self.encoding))

        self._current_file.flush()

    def _needs_size_rotation(self) -> bool:
        return self.max_bytes > 0 and self._current_size >= self.max_bytes

    def _rotate(self, new_path: str) -> None:
        if self._current_file:
            self._current_file.close()

        if new_path == self._current_path and self._needs_size_rotation():
            base, ext = os.path.splitext(new_path)
            suffix = 1
            while os.path.exists(f"{base}.{suffix}{ext}"):
                suffix += 1
            new_path = f"{base}.{suffix}{ext}"

        Path(new_path).parent.mkdir(parents=True, exist_ok=True)
        self._current_path = new_path
        self._current_file = open(new_path, "a", encoding=self.encoding)
        self._current_size = os.path.getsize(new_path)
