"""
Per-user cache inspection, clearing and warming.
"""

import asyncio
from typing import Any, Dict, List, Optional

from shared.logging import get_logger
from ..auth.jwt_auth import AuthContext
from ..caching.cache_gateway import CacheGateway, build_key, build_prefix
from ..caching.invalidator import WritePathInvalidator
from ..caching.policies import USER_SCOPED_TAGS


class CacheDiagnostics:
    """Inspecting and clearing need only the cache; warming reads through the services."""

    def __init__(
        self,
        gateway: CacheGateway,
        invalidator: WritePathInvalidator,
        orders: Optional[Any] = None,
        addresses: Optional[Any] = None,
        wishlist: Optional[Any] = None,
        cart: Optional[Any] = None,
    ):
        self.gateway = gateway
        self.invalidator = invalidator
        self.orders = orders
        self.addresses = addresses
        self.wishlist = wishlist
        self.cart = cart
        self.logger = get_logger("storefront.cache.diagnostics")

    async def user_stats(self, user_id: str) -> Dict[str, Any]:
        """Which user-scoped keys exist and how long each has left."""
        resources: Dict[str, List[Dict[str, Any]]] = {}
        for tag in USER_SCOPED_TAGS:
            root = build_key(tag, user_id)
            nested = await self.gateway.keys(build_prefix(tag, user_id))
            entries = []
            for key in [root] + sorted(nested):
                ttl = await self.gateway.ttl(key)
                if ttl is not None:
                    entries.append({"key": key, "ttl": ttl})
            resources[tag.name.lower()] = entries

        return {
            "user_id": user_id,
            "cache_available": await self.gateway.health_check(),
            "resources": resources,
            "total_keys": sum(len(entries) for entries in resources.values()),
        }

    async def clear_user(self, user_id: str) -> Dict[str, Any]:
        deleted = await self.invalidator.clear_user(user_id)
        return {"user_id": user_id, "cleared": True, "nested_keys_deleted": deleted}

    async def warm_user(self, auth: AuthContext) -> Dict[str, str]:
        """Read every per-user resource once so misses get populated.

        Resources whose service was not supplied are reported as ``skipped``.
        """
        services = {
            "orders": (self.orders, "list_orders"),
            "addresses": (self.addresses, "list_addresses"),
            "wishlist": (self.wishlist, "get_items"),
            "cart": (self.cart, "get_items"),
        }
        summary = {}
        reads = {}
        for name, (service, method) in services.items():
            if service is None:
                summary[name] = "skipped"
            else:
                reads[name] = getattr(service, method)(auth)
        results = await asyncio.gather(*reads.values(), return_exceptions=True)

        for name, result in zip(reads, results):
            if isinstance(result, Exception):
                self.logger.warning("Cache warm failed", resource=name, error=str(result))
                summary[name] = "error"
            else:
                summary[name] = result.cache_status.value
        return summary
