#!/usr/bin/env python3
"""
Inspect or clear every cached per-user resource for one shopper.

Mirrors the storefront diagnostics endpoints for use from a developer
workstation or a support runbook when the service itself is unreachable.
"""

import argparse
import asyncio
import json
from pathlib import Path
import sys
import os

sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

from shared.config import BaseConfig  # noqa: E402
from shared.logging import configure_logging  # noqa: E402
from service_storefront.app.caching.cache_gateway import CacheGateway  # noqa: E402
from service_storefront.app.caching.invalidator import WritePathInvalidator  # noqa: E402
from service_storefront.app.domain.diagnostics import CacheDiagnostics  # noqa: E402


async def run(*, redis_url: str, user_id: str, inspect_only: bool, timeout: float) -> dict:
    """Report the user's cached keys and, unless ``inspect_only``, delete them."""
    gateway = CacheGateway(redis_url, socket_timeout=timeout)
    await gateway.start()
    try:
        invalidator = WritePathInvalidator(gateway, timeout=timeout)
        diagnostics = CacheDiagnostics(gateway, invalidator)

        summary = {"before": await diagnostics.user_stats(user_id)}
        if not inspect_only:
            summary["cleared"] = await diagnostics.clear_user(user_id)
            summary["after"] = await diagnostics.user_stats(user_id)
        return summary
    finally:
        await gateway.stop()


def _parse_args() -> argparse.Namespace:
    config = BaseConfig()
    parser = argparse.ArgumentParser(description="Inspect or clear cached storefront data for one user.")
    parser.add_argument("--redis-url", default=config.redis_url, help="Redis connection URL")
    parser.add_argument("--user", required=True, help="User identifier whose cache entries are cleared")
    parser.add_argument("--inspect-only", action="store_true", help="List keys and TTLs without deleting anything")
    parser.add_argument("--timeout", type=float, default=config.redis_socket_timeout, help="Per-operation cache timeout in seconds")
    parser.add_argument("--output", type=Path, default=None, help="Optional path to write JSON summary")
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    configure_logging("clear-user-cache", "warning")
    try:
        summary = asyncio.run(
            run(
                redis_url=args.redis_url,
                user_id=args.user,
                inspect_only=args.inspect_only,
                timeout=args.timeout,
            )
        )
    except KeyboardInterrupt:
        return 130
    except Exception as exc:  # pragma: no cover - CLI surface
        print(f"[clear-user-cache] failed: {exc}", file=sys.stderr)
        return 1

    if not summary["before"]["cache_available"]:
        print("[clear-user-cache] cache unreachable, nothing inspected", file=sys.stderr)
        return 2

    print(json.dumps(summary, indent=2))

    if args.output:
        args.output.write_text(json.dumps(summary, indent=2))

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
