"""Fast-tier object storage and durable-tier downloads used by promotion."""

from __future__ import annotations

import logging
import mimetypes
from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx

from ..config import FastTierConfig
from ..media.content_hash import redundant_gateway_urls


logger = logging.getLogger(__name__)


class TransferError(Exception):
    """A promotion step failed. Never escapes the TierPromoter."""
    pass


@dataclass(frozen=True)
class MediaBlob:
    """Downloaded image bytes."""
    data: bytes
    content_type: str
    source_url: str

    @property
    def extension(self) -> str:
        ext = mimetypes.guess_extension(self.content_type) or ".jpg"
        if ext in (".jpe", ".jpeg"):
            ext = ".jpg"
        return ext.lstrip(".")


class FastTierStore(ABC):
    """Destination of promoted images."""

    @abstractmethod
    async def upload(self, entity_id: str, blob: MediaBlob) -> str:
        """Store the bytes and return their public fast-tier URL. Raises TransferError."""
        ...

    async def close(self) -> None:
        pass


class SupabaseFastTierStore(FastTierStore):
    """
    Uploads to a Supabase Storage bucket through its REST API.

    Object path comes from ``FastTierConfig.path_template``; existing
    objects are overwritten.
    """

    def __init__(self, config: FastTierConfig, client: httpx.AsyncClient | None = None):
        if not config.configured:
            raise ValueError("fast_tier.url and fast_tier.service_key are required")
        self.config = config
        self._base = config.url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=30.0)
        self._owns_client = client is None

    def object_path(self, entity_id: str, blob: MediaBlob) -> str:
        return self.config.path_template.format(entity_id=entity_id, ext=blob.extension)

    def public_url(self, path: str) -> str:
        return f"{self._base}/storage/v1/object/public/{self.config.bucket}/{path}"

    async def upload(self, entity_id: str, blob: MediaBlob) -> str:
        path = self.object_path(entity_id, blob)
        url = f"{self._base}/storage/v1/object/{self.config.bucket}/{path}"
        headers = {
            "Authorization": f"Bearer {self.config.service_key}",
            "apikey": self.config.service_key,
            "Content-Type": blob.content_type,
            "Cache-Control": f"max-age={self.config.cache_control}",
            "x-upsert": "true",
        }

        try:
            response = await self._client.post(url, content=blob.data, headers=headers)
        except httpx.HTTPError as e:
            raise TransferError(f"Upload of {path} failed: {e}") from e

        if response.status_code >= 400:
            raise TransferError(f"Upload of {path} rejected: HTTP {response.status_code} {response.text[:200]}")

        logger.info(f"Uploaded {len(blob.data)} bytes to fast tier at {path}")
        return self.public_url(path)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class GatewayFetcher:
    """Downloads content-addressed bytes, trying each gateway in turn."""

    def __init__(
        self,
        gateway: str,
        fallbacks: list[str] | tuple[str, ...] = (),
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 10.0,
        max_bytes: int = 10 * 1024 * 1024,
    ):
        self.gateway = gateway
        self.fallbacks = tuple(fallbacks)
        self.timeout_seconds = timeout_seconds
        self.max_bytes = max_bytes
        self._client = client or httpx.AsyncClient(follow_redirects=True)
        self._owns_client = client is None

    async def fetch(self, content_hash: str) -> MediaBlob:
        """Bytes from the first gateway that serves them. Raises TransferError."""
        errors = []
        for url in redundant_gateway_urls(content_hash, self.gateway, self.fallbacks):
            try:
                async with self._client.stream("GET", url, timeout=self.timeout_seconds) as response:
                    if response.status_code != 200:
                        errors.append(f"{url}: HTTP {response.status_code}")
                        continue

                    declared = response.headers.get("content-length")
                    if declared is not None and declared.isdigit() and int(declared) > self.max_bytes:
                        raise TransferError(f"{content_hash} is {declared} bytes, over the limit")

                    data = bytearray()
                    async for chunk in response.aiter_bytes():
                        data.extend(chunk)
                        if len(data) > self.max_bytes:
                            raise TransferError(f"{content_hash} exceeds {self.max_bytes} bytes, download stopped")

                    content_type = response.headers.get("content-type", "image/jpeg").split(";")[0].strip()
            except httpx.HTTPError as e:
                errors.append(f"{url}: {type(e).__name__}")
                continue

            return MediaBlob(bytes(data), content_type or "image/jpeg", url)

        raise TransferError(f"Failed to download {content_hash} from all gateways: {'; '.join(errors)}")

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
