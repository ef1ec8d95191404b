"""Build the priority-ordered list of places to look for an image."""

from __future__ import annotations

from .content_hash import DEFAULT_GATEWAY, gateway_url
from .types import CandidateSource, MediaAsset, Tier, Variant, DEFAULT_MAX_SOURCES


def _present(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def build_candidates(
    asset: MediaAsset,
    variant: Variant = Variant.STANDARD,
    *,
    max_sources: int = DEFAULT_MAX_SOURCES,
    include_durable_tier: bool = True,
    gateway: str = DEFAULT_GATEWAY,
) -> list[CandidateSource]:
    """
    Ordered candidates for an asset.

    Priorities:
        0  thumbnail (only when preferred or the variant is small)
        0  fast tier (1 when a thumbnail is preferred)
        2  legacy URL (skipped when identical to the fast-tier URL)
        3  durable tier via gateway (only when include_durable_tier)

    Duplicate URLs keep their lowest priority. Pure - no I/O.
    """
    fast = _present(asset.fast_tier_url)
    thumb = _present(asset.thumbnail_url)
    legacy = _present(asset.legacy_url)
    content_hash = _present(asset.content_hash)

    wants_thumbnail = asset.prefer_thumbnail or variant.is_small

    raw: list[CandidateSource] = []
    if thumb and wants_thumbnail:
        raw.append(CandidateSource(thumb, Tier.THUMBNAIL, 0))
    if fast:
        raw.append(CandidateSource(fast, Tier.FAST, 1 if wants_thumbnail and thumb else 0))
    if legacy and legacy != fast:
        raw.append(CandidateSource(legacy, Tier.LEGACY, 2))
    if content_hash and include_durable_tier:
        raw.append(CandidateSource(gateway_url(content_hash, gateway), Tier.DURABLE, 3))

    best: dict[str, CandidateSource] = {}
    for candidate in raw:
        seen = best.get(candidate.url)
        if seen is None or candidate.priority < seen.priority:
            best[candidate.url] = candidate

    # sorted() is stable, so equal priorities keep insertion order
    ordered = sorted(best.values(), key=lambda c: c.priority)
    return ordered[:max(max_sources, 0)]
