"""Tests for candidate list construction."""

from media_svc.media.candidates import build_candidates
from media_svc.media.types import MediaAsset, Tier, Variant

from .conftest import CID, GATEWAY


def tiers(candidates):
    return [c.tier for c in candidates]


class TestBuildCandidates:
    def test_full_asset_order(self):
        asset = MediaAsset(
            entity_id="7",
            fast_tier_url="https://fast/7.jpg",
            legacy_url="https://legacy/7.jpg",
            content_hash=CID,
        )
        candidates = build_candidates(asset, gateway=GATEWAY)

        assert tiers(candidates) == [Tier.FAST, Tier.LEGACY, Tier.DURABLE]
        assert [c.priority for c in candidates] == [0, 2, 3]
        assert candidates[2].url == f"{GATEWAY}/{CID}"

    def test_legacy_and_hash_only(self):
        asset = MediaAsset(entity_id="1", legacy_url="https://legacy/x.jpg", content_hash="bafy123")
        candidates = build_candidates(asset, Variant.STANDARD, max_sources=3, gateway=GATEWAY)

        assert tiers(candidates) == [Tier.LEGACY, Tier.DURABLE]
        # Unrecognised identifiers are used verbatim
        assert candidates[1].url == f"{GATEWAY}/bafy123"

    def test_thumbnail_ignored_for_standard_variant(self):
        asset = MediaAsset(entity_id="1", fast_tier_url="https://fast/1.jpg", thumbnail_url="https://thumb/1.jpg")
        assert tiers(build_candidates(asset, Variant.STANDARD)) == [Tier.FAST]

    def test_thumbnail_first_for_small_variants(self):
        asset = MediaAsset(entity_id="1", fast_tier_url="https://fast/1.jpg", thumbnail_url="https://thumb/1.jpg")

        for variant in (Variant.COMPACT, Variant.LIST, Variant.THUMBNAIL):
            candidates = build_candidates(asset, variant)
            assert tiers(candidates) == [Tier.THUMBNAIL, Tier.FAST]
            assert [c.priority for c in candidates] == [0, 1]

    def test_prefer_thumbnail(self):
        asset = MediaAsset(
            entity_id="1",
            fast_tier_url="https://fast/1.jpg",
            thumbnail_url="https://thumb/1.jpg",
            prefer_thumbnail=True,
        )
        assert tiers(build_candidates(asset, Variant.HERO)) == [Tier.THUMBNAIL, Tier.FAST]

    def test_fast_keeps_priority_zero_without_thumbnail(self):
        asset = MediaAsset(entity_id="1", fast_tier_url="https://fast/1.jpg", prefer_thumbnail=True)
        candidates = build_candidates(asset, Variant.COMPACT)
        assert [(c.tier, c.priority) for c in candidates] == [(Tier.FAST, 0)]

    def test_legacy_equal_to_fast_is_skipped(self):
        asset = MediaAsset(entity_id="1", fast_tier_url="https://same/1.jpg", legacy_url="https://same/1.jpg")
        assert tiers(build_candidates(asset)) == [Tier.FAST]

    def test_duplicate_urls_keep_lowest_priority(self):
        asset = MediaAsset(
            entity_id="1",
            fast_tier_url="https://same/1.jpg",
            thumbnail_url="https://same/1.jpg",
            prefer_thumbnail=True,
        )
        candidates = build_candidates(asset)
        assert len(candidates) == 1
        assert candidates[0].tier == Tier.THUMBNAIL
        assert candidates[0].priority == 0

    def test_durable_excluded(self):
        asset = MediaAsset(entity_id="1", fast_tier_url="https://fast/1.jpg", content_hash=CID)
        assert tiers(build_candidates(asset, include_durable_tier=False)) == [Tier.FAST]

    def test_max_sources_truncates(self):
        asset = MediaAsset(
            entity_id="1",
            fast_tier_url="https://fast/1.jpg",
            legacy_url="https://legacy/1.jpg",
            content_hash=CID,
        )
        assert tiers(build_candidates(asset, max_sources=2)) == [Tier.FAST, Tier.LEGACY]
        assert build_candidates(asset, max_sources=0) == []

    def test_blank_hints_ignored(self):
        asset = MediaAsset(entity_id="1", fast_tier_url="  ", legacy_url="", content_hash=CID)
        assert tiers(build_candidates(asset)) == [Tier.DURABLE]

    def test_no_hints(self):
        assert build_candidates(MediaAsset(entity_id="1")) == []


class TestMediaAsset:
    def test_has_sources(self):
        assert MediaAsset(entity_id="1", content_hash=CID).has_sources
        assert not MediaAsset(entity_id="1").has_sources
        assert not MediaAsset(entity_id="1", fast_tier_url=" ", legacy_url="").has_sources

    def test_with_fast_tier(self):
        asset = MediaAsset(entity_id="1", content_hash=CID)
        promoted = asset.with_fast_tier("https://fast/1.png")

        assert promoted.fast_tier_url == "https://fast/1.png"
        assert promoted.content_hash == CID
        assert asset.fast_tier_url is None
