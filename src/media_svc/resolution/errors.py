"""Errors that cross the resolution boundary."""

from __future__ import annotations

from ..media.types import AttemptRecord


class ResolutionError(Exception):
    """Base class - the only errors resolve() raises."""

    def __init__(self, message: str, attempts: tuple[AttemptRecord, ...] = ()):
        super().__init__(message)
        self.attempts = tuple(attempts)


class NoSourcesError(ResolutionError):
    """The asset carries no usable location hint. Fix the descriptor before retrying."""

    def __init__(self, entity_id: str):
        super().__init__(f"No image sources for {entity_id}")
        self.entity_id = entity_id


class AllSourcesExhaustedError(ResolutionError):
    """Every candidate failed. Not cached; calling resolve() again re-runs everything."""

    def __init__(self, entity_id: str, attempts: tuple[AttemptRecord, ...]):
        super().__init__(
            f"All {len(attempts)} attempts failed for {entity_id}",
            attempts,
        )
        self.entity_id = entity_id


class AbortedError(ResolutionError):
    """The caller cancelled the resolution."""

    def __init__(self, entity_id: str, attempts: tuple[AttemptRecord, ...] = ()):
        super().__init__(f"Resolution of {entity_id} aborted", attempts)
        self.entity_id = entity_id
