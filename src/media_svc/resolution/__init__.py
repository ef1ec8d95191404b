"""Resolution engine - candidates, attempts, coalescing and caching."""

from .attempt import AttemptRunner, HttpProbe, Probe, ProbeResult, classify_response
from .errors import AbortedError, AllSourcesExhaustedError, NoSourcesError, ResolutionError
from .resolver import ResolutionContext, Resolver

__all__ = [
    "AttemptRunner",
    "HttpProbe",
    "Probe",
    "ProbeResult",
    "classify_response",
    "AbortedError",
    "AllSourcesExhaustedError",
    "NoSourcesError",
    "ResolutionError",
    "ResolutionContext",
    "Resolver",
]
