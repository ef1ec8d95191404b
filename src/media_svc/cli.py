#!/usr/bin/env python3
"""
CLI tool for interacting with the media resolution service.

Usage:
    python -m media_svc.cli resolve 42 --fast-url https://.../42.jpg --hash Qm...
    python -m media_svc.cli resolve 42 --hash Qm... --variant compact --mobile
    python -m media_svc.cli stats
    python -m media_svc.cli cache
    python -m media_svc.cli promotion 42
    python -m media_svc.cli health
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

import httpx
from colorama import Fore, Style, init as colorama_init

colorama_init()


OUTCOME_COLORS = {
    "success": Fore.GREEN,
    "not_found": Fore.YELLOW,
    "timeout": Fore.MAGENTA,
    "network_error": Fore.RED,
    "aborted": Style.DIM,
}

TIER_COLORS = {
    "fast": Fore.GREEN,
    "thumbnail": Fore.CYAN,
    "legacy": Fore.YELLOW,
    "durable": Fore.MAGENTA,
}


def colorize(text: str, color: str) -> str:
    return f"{color}{text}{Style.RESET_ALL}"


def print_json(data: Any, indent: int = 2) -> None:
    print(json.dumps(data, indent=indent, default=str))


def print_attempts(attempts: list[dict], indent: str = "  ") -> None:
    """One line per probe: tier, outcome, duration, url."""
    print(colorize("\nAttempts:", Style.BRIGHT))
    if not attempts:
        print(colorize(f"{indent}(none)", Style.DIM))
        return

    for i, a in enumerate(attempts, 1):
        tier = colorize(f"{a['tier']:<9}", TIER_COLORS.get(a["tier"], ""))
        outcome = colorize(f"{a['outcome']:<13}", OUTCOME_COLORS.get(a["outcome"], ""))
        print(f"{indent}{i}. {tier} {outcome} {a['duration_ms']:>8.1f}ms  {a['url']}")
        if a.get("error"):
            print(f"{indent}   {colorize(a['error'], Style.DIM)}")


def _error(response: httpx.Response) -> int:
    print(colorize(f"Error: {response.status_code}", Fore.RED), file=sys.stderr)
    try:
        body = response.json()
    except ValueError:
        print(response.text, file=sys.stderr)
        return 1

    if isinstance(body, dict):
        detail = body.get("detail") or body.get("error")
        if detail:
            print(detail, file=sys.stderr)
        if body.get("attempts"):
            print_attempts(body["attempts"])
    return 1


async def cmd_resolve(args):
    """Resolve one evermark image."""
    payload: dict[str, Any] = {
        "entity_id": args.entity_id,
        "fast_tier_url": args.fast_url,
        "thumbnail_url": args.thumbnail_url,
        "legacy_url": args.legacy_url,
        "content_hash": args.content_hash,
        "prefer_thumbnail": args.prefer_thumbnail,
        "variant": args.variant,
    }
    if args.mobile:
        payload["mobile_optimized"] = True
    if args.no_durable:
        payload["include_durable_tier"] = False
    if args.timeout_ms is not None:
        payload["per_source_timeout_ms"] = args.timeout_ms

    async with httpx.AsyncClient() as client:
        response = await client.post(f"{args.base_url}/resolve", json=payload, timeout=60.0)

        if response.status_code != 200:
            return _error(response)

        data = response.json()

    if args.json:
        print_json(data)
        return 0

    print(colorize("\nEvermark:", Style.BRIGHT), data["entity_id"])
    print(colorize("URL:", Style.BRIGHT), data["url"])
    print(colorize("Tier:", Style.BRIGHT), colorize(data["tier"], TIER_COLORS.get(data["tier"], "")))
    print(colorize("Cached:", Style.BRIGHT), data["from_cache"])
    print(colorize("Load time:", Style.BRIGHT), f"{data['load_time_ms']:.2f}ms")
    if not data["from_cache"]:
        print_attempts(data.get("attempts", []))

    return 0


async def cmd_stats(args):
    """Show load statistics."""
    async with httpx.AsyncClient() as client:
        response = await client.get(f"{args.base_url}/stats")

        if response.status_code != 200:
            return _error(response)

        data = response.json()

    if args.json:
        print_json(data)
        return 0

    print(colorize("\nLoads:", Style.BRIGHT), data["total_loads"])
    print(colorize("Success rate:", Style.BRIGHT), f"{data['success_rate'] * 100:.1f}%")
    print(colorize("Cache hit rate:", Style.BRIGHT), f"{data['cache_hit_rate'] * 100:.1f}%")
    print(colorize("Avg network load:", Style.BRIGHT), f"{data['avg_load_time_ms']:.1f}ms")

    print(colorize("\nPer tier:", Style.BRIGHT))
    avg_ms = data.get("per_tier_avg_attempt_ms", {})
    for tier, rate in data.get("per_tier_success_rate", {}).items():
        label = colorize(f"{tier:<9}", TIER_COLORS.get(tier, ""))
        print(f"  {label} {rate * 100:5.1f}% success  {avg_ms.get(tier, 0):8.1f}ms avg")
    if not data.get("per_tier_success_rate"):
        print(colorize("  (no attempts yet)", Style.DIM))

    promotions = data.get("promotions", {})
    print(
        colorize("\nPromotions:", Style.BRIGHT),
        f"{promotions.get('completed', 0)} completed, {promotions.get('failed', 0)} failed",
    )
    return 0


async def cmd_cache(args):
    """Show cache statistics."""
    async with httpx.AsyncClient() as client:
        response = await client.get(f"{args.base_url}/cache/status")

        if response.status_code != 200:
            return _error(response)

        data = response.json()

    if args.json:
        print_json(data)
        return 0

    print(colorize("\nEntries:", Style.BRIGHT), f"{data['size']}/{data['max_entries']}")
    print(colorize("Bytes:", Style.BRIGHT), f"{data['size_bytes']}/{data['max_size_bytes']}")
    print(colorize("Hit rate:", Style.BRIGHT), f"{data['hit_rate_percent']}%")
    print(colorize("Evictions:", Style.BRIGHT), data["evictions"])
    print(colorize("Expirations:", Style.BRIGHT), data["expirations"])
    persistent = data["persistent"]
    print(
        colorize("Persistent:", Style.BRIGHT),
        colorize(str(persistent), Fore.GREEN if persistent else Style.DIM),
    )
    return 0


async def cmd_promotion(args):
    """Show the fast-tier promotion state of an evermark."""
    async with httpx.AsyncClient() as client:
        response = await client.get(f"{args.base_url}/promotions/{args.entity_id}")

        if response.status_code != 200:
            return _error(response)

        data = response.json()

    if args.json:
        print_json(data)
        return 0

    state = data["state"]
    color = {"completed": Fore.GREEN, "failed": Fore.RED, "in_flight": Fore.YELLOW}.get(state, Style.DIM)
    print(colorize("\nEvermark:", Style.BRIGHT), data["asset_key"])
    print(colorize("State:", Style.BRIGHT), colorize(state, color))
    if data.get("fast_tier_url"):
        print(colorize("Fast tier URL:", Style.BRIGHT), data["fast_tier_url"])
    if data.get("error"):
        print(colorize("Error:", Style.BRIGHT), colorize(data["error"], Fore.RED))
    return 0


async def cmd_health(args):
    """Check service health."""
    async with httpx.AsyncClient() as client:
        try:
            response = await client.get(f"{args.base_url}/health")
        except httpx.HTTPError as e:
            print(colorize(f"Unreachable: {e}", Fore.RED), file=sys.stderr)
            return 1

        if response.status_code != 200:
            return _error(response)

        data = response.json()

    status = data["status"]
    print(
        colorize("\nStatus:", Style.BRIGHT),
        colorize(status, Fore.GREEN if status == "healthy" else Fore.YELLOW),
    )
    print_json({k: v for k, v in data.items() if k != "status"})
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="CLI tool for the Evermark media resolution service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--base-url",
        default="http://localhost:8060",
        help="Base URL of the media service",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print raw JSON responses",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # resolve command
    resolve_parser = subparsers.add_parser("resolve", help="Resolve an evermark image")
    resolve_parser.add_argument("entity_id", help="Evermark id")
    resolve_parser.add_argument("--fast-url", help="Fast-tier (object storage) URL")
    resolve_parser.add_argument("--thumbnail-url", help="Thumbnail URL")
    resolve_parser.add_argument("--legacy-url", help="Legacy processed-image URL")
    resolve_parser.add_argument("--hash", dest="content_hash", help="Content hash (durable tier)")
    resolve_parser.add_argument("--prefer-thumbnail", action="store_true")
    resolve_parser.add_argument(
        "--variant",
        default="standard",
        choices=["hero", "standard", "compact", "list", "thumbnail"],
    )
    resolve_parser.add_argument("--mobile", action="store_true", help="Use mobile-optimized options")
    resolve_parser.add_argument("--no-durable", action="store_true", help="Skip the durable tier")
    resolve_parser.add_argument("--timeout-ms", type=int, help="Per-source timeout")

    # stats / cache / health commands
    subparsers.add_parser("stats", help="Show load statistics")
    subparsers.add_parser("cache", help="Show cache statistics")
    subparsers.add_parser("health", help="Check service health")

    # promotion command
    promotion_parser = subparsers.add_parser("promotion", help="Show promotion state")
    promotion_parser.add_argument("entity_id", help="Evermark id")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    commands = {
        "resolve": cmd_resolve,
        "stats": cmd_stats,
        "cache": cmd_cache,
        "promotion": cmd_promotion,
        "health": cmd_health,
    }
    return asyncio.run(commands[args.command](args))


if __name__ == "__main__":
    sys.exit(main() or 0)
