"""
Write-path cache invalidation.

Called after a mutation has committed against the source of record. Keys are
always derived from the owning user's id taken from the mutated row, which
matters when an administrator edits a customer's order. Nothing raised here
reaches the caller: the mutation has already succeeded.
"""

import asyncio
from typing import Any, List, Optional

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from .cache_gateway import CacheGateway, build_key, build_prefix
from .policies import USER_SCOPED_TAGS, CacheTag, ResourcePolicy, get_policy
from .read_through import ReadThroughAccessor


class WritePathInvalidator:

    def __init__(
        self,
        gateway: CacheGateway,
        metrics: Optional[MetricsCollector] = None,
        timeout: float = 1.0,
        reader: Optional[ReadThroughAccessor] = None,
    ):
        self.gateway = gateway
        self.reader = reader
        self.metrics = metrics
        self.timeout = timeout
        self.logger = get_logger("storefront.cache.invalidator")

    async def orders_changed(self, owner_id: str, order_id: Optional[str] = None) -> None:
        """Drop every cached order list page for the owner and, if given, one order's details."""
        await self._delete_pattern("orders", build_prefix(CacheTag.ORDERS, owner_id))
        if order_id is not None:
            await self._delete("order_details", build_key(CacheTag.ORDER_DETAILS, owner_id, order_id))

    async def addresses_changed(self, owner_id: str) -> None:
        await self._delete("addresses", build_key(CacheTag.ADDRESSES, owner_id))

    async def wishlist_changed(self, owner_id: str, items: Optional[List[Any]] = None) -> None:
        """Overwrite the cached wishlist with ``items``, or drop it when not given."""
        key = build_key(CacheTag.WISHLIST, owner_id)
        await self._replace_or_delete("wishlist", key, items, get_policy(CacheTag.WISHLIST))

    async def cart_changed(self, owner_id: str, items: Optional[List[Any]] = None) -> None:
        key = build_key(CacheTag.CART, owner_id)
        await self._replace_or_delete("cart", key, items, get_policy(CacheTag.CART))

    async def ratings_changed(self, product_id: str) -> None:
        await self._delete("ratings", build_key(CacheTag.RATINGS, "all"))
        await self._delete("ratings", build_key(CacheTag.RATINGS, "product", product_id))

    async def clear_user(self, owner_id: str) -> int:
        """Remove every user-scoped key for ``owner_id``.

        Returns the number of keys matched below the per-tag prefixes; the
        top-level keys (addresses, wishlist, cart) are not counted.
        """
        deleted = 0
        for tag in USER_SCOPED_TAGS:
            resource = tag.name.lower()
            self._mark(key=build_key(tag, owner_id), prefix=build_prefix(tag, owner_id))
            await self._guarded(resource, self.gateway.delete(build_key(tag, owner_id)), default=False)
            count = await self._guarded(resource, self.gateway.delete_pattern(build_prefix(tag, owner_id)), default=-1)
            deleted += max(0, count)
        self.logger.info("Cleared user cache", user_id=owner_id, deleted=deleted)
        return deleted

    async def _replace_or_delete(
        self, resource: str, key: str, items: Optional[List[Any]], policy: ResourcePolicy
    ) -> None:
        self._mark(key=key)
        if items is not None:
            stored = await self._guarded(resource, self.gateway.set(key, items, policy.ttl_seconds), default=False)
            if stored:
                return
            self.logger.warning("Cache overwrite failed, deleting instead", key=key)
        await self._delete(resource, key)

    async def _delete(self, resource: str, key: str) -> None:
        self._mark(key=key)
        await self._guarded(resource, self.gateway.delete(key), default=False)

    async def _delete_pattern(self, resource: str, prefix: str) -> None:
        self._mark(prefix=prefix)
        await self._guarded(resource, self.gateway.delete_pattern(prefix), default=-1)

    async def _guarded(self, resource: str, operation, default):
        """Await a gateway call with a deadline; failures are logged and counted."""
        try:
            result = await asyncio.wait_for(operation, timeout=self.timeout)
        except Exception as e:
            self.logger.error("Cache invalidation failed", resource=resource, error=str(e))
            self._record(resource, "failed")
            return default

        failed = result is False or (isinstance(result, int) and not isinstance(result, bool) and result < 0)
        self._record(resource, "failed" if failed else "succeeded")
        return result

    def _mark(self, key: Optional[str] = None, prefix: Optional[str] = None) -> None:
        # Keeps an in-flight populate from writing back the pre-write value.
        if self.reader is not None:
            self.reader.mark_written(key=key, prefix=prefix)

    def _record(self, resource: str, outcome: str) -> None:
        if self.metrics:
            self.metrics.record_invalidation(resource, outcome)
