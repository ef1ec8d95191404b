"""Tests for durable -> fast tier promotion."""

import asyncio

import httpx
import pytest

from media_svc.cache.store import CacheStore
from media_svc.config import FastTierConfig
from media_svc.media.types import MediaAsset, Tier
from media_svc.promotion.promoter import TierPromoter, TransferState
from media_svc.promotion.storage import GatewayFetcher, MediaBlob, SupabaseFastTierStore, TransferError
from media_svc.telemetry.recorder import TelemetryRecorder

from .conftest import CID, GATEWAY, RecordingFastTierStore, image_transport, make_entry


ASSET = MediaAsset(entity_id="9", content_hash=CID)


class TestTierPromoter:
    @pytest.mark.asyncio
    async def test_promote_completes(self, fast_tier_store, fetcher):
        telemetry = TelemetryRecorder()
        promoter = TierPromoter(store=fast_tier_store, fetcher=fetcher, telemetry=telemetry)

        promoter.promote(ASSET)
        assert promoter.status("9") == TransferState.IN_FLIGHT
        await promoter.drain()

        task = promoter.task("9")
        assert task.state == TransferState.COMPLETED
        assert task.fast_tier_url == "https://fast.test/evermarks/9/image.png"
        assert promoter.promoted_url("9") == task.fast_tier_url
        assert telemetry.stats()["promotions"] == {"completed": 1, "failed": 0}

    @pytest.mark.asyncio
    async def test_promote_is_idempotent(self, fetcher):
        store = RecordingFastTierStore(delay=0.05)
        promoter = TierPromoter(store=store, fetcher=fetcher)

        for _ in range(5):
            promoter.promote(ASSET)
        await promoter.drain()

        # Completed records are retained, so later wins don't start a new transfer either
        promoter.promote(ASSET)
        await promoter.drain()

        assert len(store.uploads) == 1
        assert promoter.stats["transfers_started"] == 1

    @pytest.mark.asyncio
    async def test_retention_expiry_allows_new_transfer(self, fast_tier_store, fetcher, clock):
        promoter = TierPromoter(store=fast_tier_store, fetcher=fetcher, retention_seconds=300, clock=clock)

        promoter.promote(ASSET)
        await promoter.drain()
        clock.advance(301)

        assert promoter.status("9") == TransferState.IDLE
        promoter.promote(ASSET)
        await promoter.drain()
        assert len(fast_tier_store.uploads) == 2

    @pytest.mark.asyncio
    async def test_no_hash_is_ignored(self, fast_tier_store, fetcher):
        promoter = TierPromoter(store=fast_tier_store, fetcher=fetcher)

        promoter.promote(MediaAsset(entity_id="5", legacy_url="https://legacy.test/5.jpg"))
        await promoter.drain()

        assert promoter.status("5") == TransferState.IDLE
        assert fast_tier_store.uploads == []

    @pytest.mark.asyncio
    async def test_upload_failure_leaves_cache_untouched(self, fetcher, clock):
        cache = CacheStore(clock=clock)
        entry = make_entry("9:standard", clock, url=f"{GATEWAY}/{CID}")
        entry.resolved_tier = Tier.DURABLE
        await cache.put("9:standard", entry)

        telemetry = TelemetryRecorder()
        promoter = TierPromoter(
            store=RecordingFastTierStore(fail=True), fetcher=fetcher, cache=cache, telemetry=telemetry,
        )

        promoter.promote(ASSET)
        await promoter.drain()

        task = promoter.task("9")
        assert task.state == TransferState.FAILED
        assert "rejected" in task.error
        assert cache.peek("9:standard").url == f"{GATEWAY}/{CID}"
        assert cache.peek("9:standard").resolved_tier == Tier.DURABLE
        assert promoter.promoted_url("9") is None
        assert telemetry.stats()["promotions"]["failed"] == 1

    @pytest.mark.asyncio
    async def test_timeout(self, fetcher):
        promoter = TierPromoter(store=RecordingFastTierStore(delay=1.0), fetcher=fetcher, timeout_seconds=0.02)

        promoter.promote(ASSET)
        await promoter.drain()

        assert promoter.status("9") == TransferState.FAILED
        assert "timed out" in promoter.task("9").error

    @pytest.mark.asyncio
    async def test_success_repoints_cache(self, fast_tier_store, fetcher, clock):
        cache = CacheStore(clock=clock)
        await cache.put("9:standard", make_entry("9:standard", clock, url=f"{GATEWAY}/{CID}", tier=Tier.DURABLE))
        await cache.put("9:hero", make_entry("9:hero", clock, url=f"{GATEWAY}/{CID}", tier=Tier.DURABLE))
        await cache.put("9:list", make_entry("9:list", clock, url="https://thumb.test/9.jpg", tier=Tier.THUMBNAIL))
        promoter = TierPromoter(store=fast_tier_store, fetcher=fetcher, cache=cache)

        promoter.promote(ASSET)
        await promoter.drain()

        for key in ("9:standard", "9:hero"):
            assert cache.peek(key).url == "https://fast.test/evermarks/9/image.png"
            assert cache.peek(key).resolved_tier == Tier.FAST
        assert cache.peek("9:list").url == "https://thumb.test/9.jpg"
        assert cache.peek("9:list").resolved_tier == Tier.THUMBNAIL

    @pytest.mark.asyncio
    async def test_failed_transfer_can_be_retried(self, fetcher):
        store = RecordingFastTierStore(fail=True)
        promoter = TierPromoter(store=store, fetcher=fetcher)

        promoter.promote(ASSET)
        await promoter.drain()
        assert promoter.status("9") == TransferState.FAILED

        store.fail = False
        promoter.promote(ASSET)
        await promoter.drain()

        assert promoter.status("9") == TransferState.COMPLETED
        assert len(store.uploads) == 1
        assert promoter.stats["transfers_started"] == 2

    def test_apply_promoted(self, fast_tier_store, fetcher):
        promoter = TierPromoter(store=fast_tier_store, fetcher=fetcher)
        assert promoter.apply_promoted(ASSET) is ASSET

        promoter._remember("9", "https://fast.test/9.png")
        assert promoter.apply_promoted(ASSET).fast_tier_url == "https://fast.test/9.png"

    def test_promoted_urls_bounded(self, fast_tier_store, fetcher):
        promoter = TierPromoter(store=fast_tier_store, fetcher=fetcher, max_promoted_urls=2)
        for i in range(3):
            promoter._remember(str(i), f"https://fast.test/{i}.png")

        assert promoter.promoted_url("0") is None
        assert promoter.promoted_url("2") == "https://fast.test/2.png"


class TestGatewayFetcher:
    @pytest.mark.asyncio
    async def test_falls_back_to_next_gateway(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.host)
            if request.url.host == "primary.test":
                return httpx.Response(504)
            return httpx.Response(200, content=b"jpegbytes", headers={"content-type": "image/jpeg"})

        fetcher = GatewayFetcher(
            gateway="https://primary.test/ipfs",
            fallbacks=["https://backup.test/ipfs"],
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        blob = await fetcher.fetch(CID)

        assert seen == ["primary.test", "backup.test"]
        assert blob.data == b"jpegbytes"
        assert blob.extension == "jpg"
        assert blob.source_url == f"https://backup.test/ipfs/{CID}"

    @pytest.mark.asyncio
    async def test_all_gateways_fail(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        fetcher = GatewayFetcher(
            gateway="https://primary.test/ipfs",
            fallbacks=["https://backup.test/ipfs"],
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        with pytest.raises(TransferError):
            await fetcher.fetch(CID)

    @pytest.mark.asyncio
    async def test_oversized_download(self):
        fetcher = GatewayFetcher(
            gateway=GATEWAY,
            client=httpx.AsyncClient(transport=image_transport()),
            max_bytes=4,
        )
        with pytest.raises(TransferError):
            await fetcher.fetch(CID)

    @pytest.mark.asyncio
    async def test_declared_length_over_limit(self):
        transport = httpx.MockTransport(
            lambda r: httpx.Response(200, content=b"x" * 64, headers={"content-type": "image/png"})
        )
        fetcher = GatewayFetcher(gateway=GATEWAY, client=httpx.AsyncClient(transport=transport), max_bytes=16)

        with pytest.raises(TransferError, match="64 bytes"):
            await fetcher.fetch(CID)

    @pytest.mark.asyncio
    async def test_unsized_stream_stops_at_limit(self):
        sent = []

        async def body():
            for _ in range(100):
                sent.append(1)
                yield b"x" * 10

        transport = httpx.MockTransport(lambda r: httpx.Response(200, content=body()))
        fetcher = GatewayFetcher(gateway=GATEWAY, client=httpx.AsyncClient(transport=transport), max_bytes=25)

        with pytest.raises(TransferError, match="download stopped"):
            await fetcher.fetch(CID)
        assert len(sent) < 100

    @pytest.mark.asyncio
    async def test_content_type_parameters_dropped(self):
        transport = httpx.MockTransport(
            lambda r: httpx.Response(200, content=b"gif", headers={"content-type": "image/gif; charset=binary"})
        )
        fetcher = GatewayFetcher(gateway=GATEWAY, client=httpx.AsyncClient(transport=transport))

        blob = await fetcher.fetch(CID)
        assert blob.content_type == "image/gif"
        assert blob.data == b"gif"


class TestSupabaseFastTierStore:
    @pytest.fixture
    def config(self):
        return FastTierConfig(url="https://proj.supabase.test/", service_key="secret")

    def test_requires_configuration(self):
        with pytest.raises(ValueError):
            SupabaseFastTierStore(FastTierConfig())

    @pytest.mark.asyncio
    async def test_upload(self, config):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["headers"] = request.headers
            captured["body"] = request.content
            return httpx.Response(200, json={"Key": "evermark-images/evermarks/9/image.png"})

        store = SupabaseFastTierStore(config, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        url = await store.upload("9", MediaBlob(b"png", "image/png", "https://gw/x"))

        assert captured["url"] == "https://proj.supabase.test/storage/v1/object/evermark-images/evermarks/9/image.png"
        assert captured["headers"]["authorization"] == "Bearer secret"
        assert captured["headers"]["x-upsert"] == "true"
        assert captured["body"] == b"png"
        assert url == "https://proj.supabase.test/storage/v1/object/public/evermark-images/evermarks/9/image.png"

    @pytest.mark.asyncio
    async def test_upload_rejected(self, config):
        transport = httpx.MockTransport(lambda r: httpx.Response(403, text="forbidden"))
        store = SupabaseFastTierStore(config, client=httpx.AsyncClient(transport=transport))

        with pytest.raises(TransferError, match="403"):
            await store.upload("9", MediaBlob(b"png", "image/png", "https://gw/x"))


class TestPromoterConcurrency:
    @pytest.mark.asyncio
    async def test_promote_never_blocks(self, fetcher):
        promoter = TierPromoter(store=RecordingFastTierStore(delay=0.2), fetcher=fetcher)

        loop = asyncio.get_running_loop()
        start = loop.time()
        promoter.promote(ASSET)
        assert loop.time() - start < 0.05

        await promoter.drain()
