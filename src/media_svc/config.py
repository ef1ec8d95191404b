"""Configuration for the media resolution service."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .media.content_hash import DEFAULT_FALLBACK_GATEWAYS, DEFAULT_GATEWAY
from .media.types import (
    DEFAULT_BACKOFF_BASE_MS,
    DEFAULT_BACKOFF_CAP_MS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_SOURCES,
    DEFAULT_TIMEOUT_MS,
    DEFAULT_TTL_MS,
    ResolutionOptions,
)


@dataclass
class ServerConfig:
    """HTTP server configuration."""
    host: str = "0.0.0.0"
    port: int = 8060
    workers: int = 1
    reload: bool = False


@dataclass
class TelemetryConfig:
    """Telemetry configuration."""
    enabled: bool = True
    sink_type: str = "console"  # console | file | zmq
    sink_config: dict[str, Any] = field(default_factory=dict)

    # Batching
    batch_size: int = 500
    flush_interval_seconds: float = 2.0

    # Queue
    max_queue_size: int = 10000


@dataclass
class CacheConfig:
    """Resolved-URL cache configuration."""
    max_entries: int = 100
    max_size_bytes: int = 50 * 1024 * 1024
    default_ttl_seconds: float = DEFAULT_TTL_MS / 1000
    # Upper bound on the expiry sweep interval (interval = ttl / 4, capped)
    sweep_interval_cap_seconds: float = 300.0


@dataclass
class RedisConfig:
    """Optional persistence backend for the cache."""
    enabled: bool = False
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: str | None = None
    prefix: str = "media:resolved:"
    socket_timeout: float = 2.0
    socket_connect_timeout: float = 2.0


@dataclass
class ResolutionConfig:
    """Service-wide defaults for ResolutionOptions."""
    max_sources: int = DEFAULT_MAX_SOURCES
    per_source_timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_retries: int = DEFAULT_MAX_RETRIES
    include_durable_tier: bool = True
    ttl_ms: int = DEFAULT_TTL_MS
    mobile_optimized: bool = False
    backoff_base_ms: int = DEFAULT_BACKOFF_BASE_MS
    backoff_cap_ms: int = DEFAULT_BACKOFF_CAP_MS

    def to_options(self) -> ResolutionOptions:
        """Default per-call options for the resolver."""
        return ResolutionOptions(
            max_sources=self.max_sources,
            per_source_timeout_ms=self.per_source_timeout_ms,
            max_retries=self.max_retries,
            include_durable_tier=self.include_durable_tier,
            ttl_ms=self.ttl_ms,
            mobile_optimized=self.mobile_optimized,
            backoff_base_ms=self.backoff_base_ms,
            backoff_cap_ms=self.backoff_cap_ms,
        )


@dataclass
class GatewayConfig:
    """Durable-tier gateways."""
    primary: str = DEFAULT_GATEWAY
    fallbacks: list[str] = field(default_factory=lambda: list(DEFAULT_FALLBACK_GATEWAYS))


@dataclass
class FastTierConfig:
    """Fast-tier object storage (Supabase Storage)."""
    url: str | None = None
    service_key: str | None = None
    bucket: str = "evermark-images"
    # Object path; {entity_id} and {ext} are substituted
    path_template: str = "evermarks/{entity_id}/image.{ext}"
    cache_control: str = "3600"

    @property
    def configured(self) -> bool:
        return bool(self.url and self.service_key)


@dataclass
class PromotionConfig:
    """Background durable -> fast tier promotion."""
    enabled: bool = True
    timeout_seconds: float = 30.0
    # Per-gateway download timeout
    download_timeout_seconds: float = 10.0
    # How long finished transfer records suppress duplicate promotions
    retention_seconds: float = 300.0
    max_bytes: int = 10 * 1024 * 1024


@dataclass
class Config:
    """Main configuration container."""
    server: ServerConfig = field(default_factory=ServerConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    resolution: ResolutionConfig = field(default_factory=ResolutionConfig)
    gateways: GatewayConfig = field(default_factory=GatewayConfig)
    fast_tier: FastTierConfig = field(default_factory=FastTierConfig)
    promotion: PromotionConfig = field(default_factory=PromotionConfig)

    @classmethod
    def from_dict(cls, data: dict) -> Config:
        """Create config from dictionary."""
        return cls(
            server=ServerConfig(**data.get("server", {})),
            telemetry=TelemetryConfig(**data.get("telemetry", {})),
            cache=CacheConfig(**data.get("cache", {})),
            redis=RedisConfig(**data.get("redis", {})),
            resolution=ResolutionConfig(**data.get("resolution", {})),
            gateways=GatewayConfig(**data.get("gateways", {})),
            fast_tier=FastTierConfig(**data.get("fast_tier", {})),
            promotion=PromotionConfig(**data.get("promotion", {})),
        )

    @classmethod
    def from_yaml(cls, path: str) -> Config:
        """Load config from YAML file."""
        import yaml
        with open(path, "r") as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {})

    @classmethod
    def from_json(cls, path: str) -> Config:
        """Load config from JSON file."""
        import json
        with open(path, "r") as f:
            data = json.load(f)
        return cls.from_dict(data)
