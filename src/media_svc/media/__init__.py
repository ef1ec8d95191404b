"""Media asset types and candidate building."""

from .types import (
    AttemptOutcome,
    AttemptRecord,
    CacheEntry,
    CandidateSource,
    MediaAsset,
    ResolutionOptions,
    ResolvedImage,
    Tier,
    Variant,
    cache_key,
)
from .candidates import build_candidates
from .content_hash import extract_hash, gateway_url, is_valid_hash, redundant_gateway_urls

__all__ = [
    "AttemptOutcome",
    "AttemptRecord",
    "CacheEntry",
    "CandidateSource",
    "MediaAsset",
    "ResolutionOptions",
    "ResolvedImage",
    "Tier",
    "Variant",
    "cache_key",
    "build_candidates",
    "extract_hash",
    "gateway_url",
    "is_valid_hash",
    "redundant_gateway_urls",
]
