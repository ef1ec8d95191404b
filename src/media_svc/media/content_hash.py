"""Helpers for content-addressed (durable tier) identifiers."""

from __future__ import annotations

import re

DEFAULT_GATEWAY = "https://gateway.pinata.cloud/ipfs"

DEFAULT_FALLBACK_GATEWAYS: tuple[str, ...] = (
    "https://ipfs.io/ipfs",
    "https://cloudflare-ipfs.com/ipfs",
    "https://dweb.link/ipfs",
)

# CIDv0 (base58 "Qm..."), CIDv1 base32 lower/upper, base58btc, base16
_HASH_RE = re.compile(
    r"^(Qm[1-9A-HJ-NP-Za-km-z]{44}"
    r"|b[a-z2-7]{58}"
    r"|B[A-Z2-7]{58}"
    r"|z[1-9A-HJ-NP-Za-km-z]{48}"
    r"|F[0-9A-F]{50})$"
)

# scheme://host/ipfs/<hash>[/...] or host/<hash>
_GATEWAY_URL_RE = re.compile(r"^(?:https?://)?[^/]+/(?:ipfs/)?([^/?#]+)")


def is_valid_hash(value: str) -> bool:
    """Whether value looks like a content identifier."""
    return bool(_HASH_RE.match(value))


def extract_hash(value: str) -> str | None:
    """
    Pull the content hash out of an ``ipfs://`` URI, a gateway URL or a bare hash.

    Returns None when nothing hash-like is present.
    """
    value = value.strip()
    if not value:
        return None

    if value.startswith("ipfs://"):
        rest = value[len("ipfs://"):]
        if rest.startswith("ipfs/"):
            rest = rest[len("ipfs/"):]
        return rest.split("/", 1)[0] or None

    if is_valid_hash(value):
        return value

    match = _GATEWAY_URL_RE.match(value)
    if match and is_valid_hash(match.group(1)):
        return match.group(1)

    return None


def gateway_url(content_hash: str, gateway: str = DEFAULT_GATEWAY) -> str:
    """Gateway URL for a content hash.

    Unrecognised values are used verbatim so that non-standard identifiers
    still produce a probe-able URL.
    """
    clean = extract_hash(content_hash) or content_hash.strip()
    return f"{gateway.rstrip('/')}/{clean}"


def redundant_gateway_urls(
    content_hash: str,
    gateway: str = DEFAULT_GATEWAY,
    fallbacks: tuple[str, ...] | list[str] = DEFAULT_FALLBACK_GATEWAYS,
) -> list[str]:
    """Gateway URLs for a hash, primary first, without duplicates."""
    urls: list[str] = []
    for gw in (gateway, *fallbacks):
        url = gateway_url(content_hash, gw)
        if url not in urls:
            urls.append(url)
    return urls
