"""
Per-user wishlist and cart collections.

Both are stored as a full item list per user and replaced wholesale on every
write; the cached copy is overwritten with the new list rather than dropped.
"""

from typing import Any, Dict, List

from shared.errors import ValidationError
from shared.logging import get_logger
from ..auth.jwt_auth import AuthContext
from ..caching.cache_gateway import build_key
from ..caching.invalidator import WritePathInvalidator
from ..caching.policies import CacheTag, get_policy
from ..caching.read_through import CachedRead, ReadThroughAccessor
from ..persistence.postgres import StorefrontRepository

WISHLIST = "wishlist"
CART = "cart"


def normalize_items(kind: str, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Check shape and collapse duplicate product ids, keeping first-seen order."""
    normalized: Dict[str, Dict[str, Any]] = {}
    for item in items:
        if not isinstance(item, dict) or not item.get("id"):
            raise ValidationError("Each item must be an object with an id")
        item_id = str(item["id"])
        if kind == CART:
            quantity = item.get("quantity", 1)
            if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
                raise ValidationError("Cart quantities must be positive integers", details={"id": item_id})
            if item_id in normalized:
                normalized[item_id]["quantity"] += quantity
                continue
            normalized[item_id] = {**item, "id": item_id, "quantity": quantity}
        elif item_id not in normalized:
            normalized[item_id] = {**item, "id": item_id}
    return list(normalized.values())


class CollectionService:
    """Read-through access and replace/clear writes for one collection kind."""

    def __init__(
        self,
        kind: str,
        repository: StorefrontRepository,
        reader: ReadThroughAccessor,
        invalidator: WritePathInvalidator,
    ):
        if kind not in (WISHLIST, CART):
            raise ValueError(f"unknown collection kind: {kind}")
        self.kind = kind
        self.tag = CacheTag.WISHLIST if kind == WISHLIST else CacheTag.CART
        self.repository = repository
        self.reader = reader
        self.invalidator = invalidator
        self.logger = get_logger(f"storefront.{kind}")

    async def get_items(self, auth: AuthContext) -> CachedRead:
        user_id = auth.require_user()

        async def load():
            return await self.repository.get_collection(user_id, self.kind) or []

        return await self.reader.fetch(build_key(self.tag, user_id), get_policy(self.tag), load)

    async def replace_items(self, auth: AuthContext, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        user_id = auth.require_user()
        stored = await self.repository.save_collection(user_id, self.kind, normalize_items(self.kind, items))
        await self._changed(user_id, stored)
        self.logger.info("Collection saved", user_id=user_id, count=len(stored))
        return stored

    async def add_item(self, auth: AuthContext, item: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Append one item, reading the current list from the source of record."""
        user_id = auth.require_user()
        current = await self.repository.get_collection(user_id, self.kind) or []
        return await self.replace_items(auth, current + [item])

    async def remove_item(self, auth: AuthContext, item_id: str) -> List[Dict[str, Any]]:
        user_id = auth.require_user()
        current = await self.repository.get_collection(user_id, self.kind) or []
        return await self.replace_items(auth, [i for i in current if str(i.get("id")) != item_id])

    async def clear(self, auth: AuthContext) -> None:
        user_id = auth.require_user()
        await self.repository.delete_collection(user_id, self.kind)
        await self._changed(user_id, None)
        self.logger.info("Collection cleared", user_id=user_id)

    async def _changed(self, user_id: str, items):
        if self.kind == WISHLIST:
            await self.invalidator.wishlist_changed(user_id, items)
        else:
            await self.invalidator.cart_changed(user_id, items)
