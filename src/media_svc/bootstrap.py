"""Builds the service components from configuration."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from .cache.redis import RedisCacheBackend
from .cache.store import CacheStore
from .config import Config
from .promotion.promoter import TierPromoter
from .promotion.storage import GatewayFetcher, SupabaseFastTierStore
from .resolution.attempt import HttpProbe
from .resolution.resolver import ResolutionContext, Resolver
from .telemetry.batcher import TelemetryBatcher, create_batched_consumer
from .telemetry.emitter import TelemetryEmitter
from .telemetry.recorder import TelemetryRecorder
from .telemetry.sinks import TelemetrySink, create_sink


logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "MEDIA_SVC_CONFIG"


def load_config() -> tuple[Config, Path | None]:
    """Config from $MEDIA_SVC_CONFIG, else ./config.yaml, else defaults."""
    env_path = os.environ.get(CONFIG_ENV_VAR)
    candidates = [Path(env_path)] if env_path else [Path("config.yaml")]

    for path in candidates:
        if path.exists():
            logger.info(f"Loading config from {path}")
            return Config.from_yaml(str(path)), path

    if env_path:
        logger.warning(f"{CONFIG_ENV_VAR}={env_path} does not exist, using defaults")
    return Config(), None


async def build_cache(config: Config) -> tuple[CacheStore, RedisCacheBackend | None]:
    """Cache store, with Redis persistence attached only if it connects."""
    backend = None
    if config.redis.enabled:
        redis_backend = RedisCacheBackend(config.redis)
        if await redis_backend.connect():
            backend = redis_backend
        else:
            logger.warning("Redis unavailable, cache is in-memory only")

    cache = CacheStore(
        max_entries=config.cache.max_entries,
        max_size_bytes=config.cache.max_size_bytes,
        default_ttl_seconds=config.cache.default_ttl_seconds,
        sweep_interval_cap_seconds=config.cache.sweep_interval_cap_seconds,
        backend=backend,
    )
    return cache, backend


async def build_telemetry(config: Config) -> tuple[TelemetryEmitter | None, TelemetryBatcher | None, TelemetrySink | None]:
    """Export pipeline (emitter -> batcher -> sink), or Nones when disabled."""
    if not config.telemetry.enabled:
        return None, None, None

    emitter = TelemetryEmitter(max_queue_size=config.telemetry.max_queue_size)
    sink = create_sink(config.telemetry.sink_type, config.telemetry.sink_config)
    await sink.start()

    batcher = TelemetryBatcher(
        batch_size=config.telemetry.batch_size,
        flush_interval_seconds=config.telemetry.flush_interval_seconds,
        sink=sink.send,
    )
    emitter.add_consumer(create_batched_consumer(batcher))
    return emitter, batcher, sink


def build_promoter(config: Config, cache: CacheStore, telemetry: TelemetryRecorder) -> TierPromoter | None:
    if not config.promotion.enabled:
        logger.info("Tier promotion disabled")
        return None
    if not config.fast_tier.configured:
        logger.info("Fast tier storage not configured, tier promotion disabled")
        return None

    return TierPromoter(
        store=SupabaseFastTierStore(config.fast_tier),
        fetcher=GatewayFetcher(
            gateway=config.gateways.primary,
            fallbacks=config.gateways.fallbacks,
            timeout_seconds=config.promotion.download_timeout_seconds,
            max_bytes=config.promotion.max_bytes,
        ),
        cache=cache,
        telemetry=telemetry,
        timeout_seconds=config.promotion.timeout_seconds,
        retention_seconds=config.promotion.retention_seconds,
    )


def build_resolver(
    config: Config,
    cache: CacheStore,
    telemetry: TelemetryRecorder,
    promoter: TierPromoter | None,
    probe: HttpProbe | None = None,
) -> Resolver:
    context = ResolutionContext(cache=cache, telemetry=telemetry, promoter=promoter)
    return Resolver(
        context=context,
        probe=probe or HttpProbe(),
        gateway=config.gateways.primary,
        defaults=config.resolution.to_options(),
    )
