"""Base sink interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..events import MediaEvent


class TelemetrySink(ABC):
    """
    Destination for batches of media events (file, message queue, ...).
    """

    @abstractmethod
    async def send(self, events: list[MediaEvent]) -> None:
        ...

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass

    async def health_check(self) -> bool:
        return True
