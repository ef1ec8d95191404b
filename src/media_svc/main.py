"""FastAPI application - Evermark Media Resolution Service.

Start with:
    PYTHONPATH=src uvicorn media_svc.main:app --host 0.0.0.0 --port 8060

The service tells clients WHICH URL to render for an evermark image.
It does not proxy image bytes.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import __version__
from . import bootstrap as bs
from .cache.base import CacheBackend
from .cache.store import CacheStore
from .media.types import MediaAsset, ResolutionOptions, ResolvedImage, Variant
from .promotion.promoter import TierPromoter
from .resolution.errors import AbortedError, AllSourcesExhaustedError, NoSourcesError, ResolutionError
from .resolution.resolver import Resolver
from .telemetry.emitter import TelemetryEmitter
from .telemetry.recorder import TelemetryRecorder


logger = logging.getLogger(__name__)


# Request/response models
class AssetModel(BaseModel):
    """Location hints for one evermark image."""
    entity_id: str
    fast_tier_url: str | None = None
    thumbnail_url: str | None = None
    legacy_url: str | None = None
    content_hash: str | None = None
    prefer_thumbnail: bool = False

    def to_asset(self) -> MediaAsset:
        return MediaAsset(**self.model_dump(include=set(AssetModel.model_fields)))


class OptionOverrides(BaseModel):
    """Per-request overrides of the service's resolution defaults."""
    mobile_optimized: bool | None = None
    max_sources: int | None = Field(default=None, ge=1, le=4)
    include_durable_tier: bool | None = None
    max_retries: int | None = Field(default=None, ge=0, le=5)
    per_source_timeout_ms: int | None = Field(default=None, ge=100, le=60000)
    ttl_ms: int | None = Field(default=None, ge=1000)


class ResolveRequest(AssetModel, OptionOverrides):
    variant: Variant = Variant.STANDARD


class PreloadRequest(OptionOverrides):
    assets: list[AssetModel]
    variant: Variant = Variant.STANDARD


class AttemptModel(BaseModel):
    url: str
    tier: str
    priority: int
    outcome: str
    duration_ms: float
    error: str | None = None


class ResolveResponse(BaseModel):
    entity_id: str
    url: str
    tier: str
    from_cache: bool
    load_time_ms: float
    attempts: list[AttemptModel] = []


class HealthResponse(BaseModel):
    status: str
    cache: dict[str, Any]
    redis: dict[str, Any]
    telemetry: dict[str, Any]
    promotion: dict[str, Any] | None = None


# Global state (initialized in lifespan)
_resolver: Resolver | None = None
_cache: CacheStore | None = None
_telemetry: TelemetryRecorder | None = None
_emitter: TelemetryEmitter | None = None
_promoter: TierPromoter | None = None
_backend: CacheBackend | None = None


def _set_globals(
    resolver: Resolver,
    emitter: TelemetryEmitter | None = None,
    backend: CacheBackend | None = None,
) -> None:
    """Install the components route handlers read."""
    global _resolver, _cache, _telemetry, _emitter, _promoter, _backend
    _resolver = resolver
    _cache = resolver.context.cache
    _telemetry = resolver.context.telemetry
    _promoter = resolver.context.promoter
    _emitter = emitter
    _backend = backend


def _require_resolver() -> Resolver:
    if _resolver is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return _resolver


def _to_response(entity_id: str, result: ResolvedImage) -> ResolveResponse:
    return ResolveResponse(
        entity_id=entity_id,
        url=result.url,
        tier=result.tier.value,
        from_cache=result.from_cache,
        load_time_ms=round(result.load_time_ms, 2),
        attempts=[AttemptModel(**a.to_dict()) for a in result.attempts],
    )


def _options(resolver: Resolver, body: OptionOverrides) -> ResolutionOptions:
    """Service defaults with the request's non-null overrides applied."""
    overrides = {
        k: v for k, v in body.model_dump(include=set(OptionOverrides.model_fields)).items()
        if v is not None
    }
    return replace(resolver.defaults, **overrides) if overrides else resolver.defaults


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    logger.info("Starting media resolution service...")

    config, _config_path = bs.load_config()

    cache, backend = await bs.build_cache(config)
    await cache.warm()

    emitter, batcher, sink = await bs.build_telemetry(config)
    telemetry = TelemetryRecorder(emitter=emitter)

    background: list[asyncio.Task] = [asyncio.create_task(cache.sweep_loop())]
    if emitter is not None:
        await emitter.start()
        background.append(asyncio.create_task(emitter.process_loop()))
        background.append(asyncio.create_task(batcher.timer_loop()))

    promoter = bs.build_promoter(config, cache, telemetry)
    resolver = bs.build_resolver(config, cache, telemetry, promoter)
    _set_globals(resolver, emitter=emitter, backend=backend)

    logger.info("Media resolution service started")
    yield

    logger.info("Shutting down media resolution service...")

    if promoter is not None:
        await promoter.drain()
        await promoter.store.close()
        await promoter.fetcher.close()

    cache.stop()
    for task in background:
        task.cancel()
    await asyncio.gather(*background, return_exceptions=True)

    if emitter is not None:
        await emitter.stop()
        await batcher.stop()
        await sink.stop()

    await resolver.probe.close()
    if backend is not None:
        await backend.close()

    logger.info("Media resolution service stopped")


app = FastAPI(
    title="Evermark Media Resolver",
    description="Resolves evermark images to the fastest available storage tier.",
    version=__version__,
    lifespan=lifespan,
)


@app.exception_handler(NoSourcesError)
async def no_sources_handler(request: Request, exc: NoSourcesError):
    return JSONResponse(
        status_code=400,
        content={"error": "No sources", "detail": str(exc), "entity_id": exc.entity_id},
    )


@app.exception_handler(AllSourcesExhaustedError)
async def exhausted_handler(request: Request, exc: AllSourcesExhaustedError):
    return JSONResponse(
        status_code=502,
        content={
            "error": "All sources exhausted",
            "detail": str(exc),
            "entity_id": exc.entity_id,
            "attempts": [a.to_dict() for a in exc.attempts],
            "retryable": True,
        },
    )


@app.exception_handler(AbortedError)
async def aborted_handler(request: Request, exc: AbortedError):
    return JSONResponse(status_code=499, content={"error": "Aborted", "detail": str(exc)})


@app.post("/resolve", response_model=ResolveResponse, tags=["Resolution"])
async def resolve(body: ResolveRequest):
    """Resolve one evermark image to a renderable URL."""
    resolver = _require_resolver()
    result = await resolver.resolve(body.to_asset(), _options(resolver, body), variant=body.variant)
    return _to_response(body.entity_id, result)


@app.post("/preload", tags=["Resolution"])
async def preload(body: PreloadRequest):
    """Resolve a batch of images concurrently; failures are reported per asset."""
    resolver = _require_resolver()
    results = await resolver.preload(
        [a.to_asset() for a in body.assets], _options(resolver, body), variant=body.variant,
    )

    resolved: dict[str, Any] = {}
    failed: dict[str, Any] = {}
    for entity_id, result in results.items():
        if isinstance(result, ResolutionError):
            failed[entity_id] = {"error": type(result).__name__, "detail": str(result)}
        else:
            resolved[entity_id] = _to_response(entity_id, result).model_dump()
    return {"resolved": resolved, "failed": failed}


@app.get("/stats", tags=["Telemetry"])
async def stats():
    """Load statistics (success rate, per-tier success, cache hit rate)."""
    if _telemetry is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return _telemetry.stats()


@app.get("/cache/status", tags=["Cache"])
async def cache_status():
    if _cache is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return _cache.stats


@app.get("/promotions/{entity_id}", tags=["Promotion"])
async def promotion_status(entity_id: str):
    """Transfer state of an evermark's durable -> fast tier promotion."""
    if _promoter is None:
        raise HTTPException(status_code=404, detail="Tier promotion is disabled")
    task = _promoter.task(entity_id)
    if task is None:
        return {"asset_key": entity_id, "state": _promoter.status(entity_id).value}
    return task.to_dict()


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health():
    if _resolver is None or _cache is None:
        raise HTTPException(status_code=503, detail="Service not initialized")

    redis_health = await _backend.health_check() if _backend is not None else {"status": "disabled"}
    return HealthResponse(
        status="healthy" if not _cache.degraded else "degraded",
        cache=_cache.stats,
        redis=redis_health,
        telemetry=_emitter.stats if _emitter is not None else {"enabled": False},
        promotion=_promoter.stats if _promoter is not None else None,
    )


@app.get("/")
async def root():
    """Root endpoint with service info."""
    return {
        "service": "Evermark Media Resolver",
        "version": __version__,
        "endpoints": {
            "/resolve": "POST - Resolve an evermark image to a URL",
            "/preload": "POST - Resolve a batch of images",
            "/stats": "Load statistics",
            "/cache/status": "Cache statistics",
            "/promotions/{entity_id}": "Fast-tier promotion status",
            "/health": "Health check",
        },
    }


def run():
    """Run the service with uvicorn."""
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config, _ = bs.load_config()
    uvicorn.run(
        "media_svc.main:app",
        host=config.server.host,
        port=config.server.port,
        workers=config.server.workers,
        reload=config.server.reload,
    )


if __name__ == "__main__":
    run()
