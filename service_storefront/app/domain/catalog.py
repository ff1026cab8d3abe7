"""
Size options for catalog filters.

Read far more often than they change, so they sit behind two cache tiers:
a short-lived in-process copy in front of the shared read-through cache.
"""

from typing import Any, Dict, List

from shared.logging import get_logger
from ..caching.cache_gateway import build_key
from ..caching.local_cache import LocalTTLCache
from ..caching.policies import CacheStatus, CacheTag, get_policy
from ..caching.read_through import CachedRead, ReadThroughAccessor
from ..persistence.postgres import StorefrontRepository

SIZE_OPTIONS_KEY = build_key(CacheTag.SIZE_OPTIONS)


def to_size_options(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        {
            "id": str(row.get("slug") or row["id"]),
            "slug": str(row.get("slug") or row["id"]),
            "name": str(row["name"]),
            "display_order": int(row.get("display_order") or 0),
        }
        for row in rows
    ]


class SizeOptionsService:

    def __init__(
        self,
        repository: StorefrontRepository,
        reader: ReadThroughAccessor,
        local_cache: LocalTTLCache,
    ):
        self.repository = repository
        self.reader = reader
        self.local_cache = local_cache
        self.logger = get_logger("storefront.catalog.sizes")

    async def get_size_options(self) -> CachedRead:
        cached = self.local_cache.get(SIZE_OPTIONS_KEY)
        if cached is not None:
            return CachedRead(cached, CacheStatus.HIT, SIZE_OPTIONS_KEY, data_source="MEMORY_CACHE")

        async def load():
            return to_size_options(await self.repository.list_sizes())

        result = await self.reader.fetch(SIZE_OPTIONS_KEY, get_policy(CacheTag.SIZE_OPTIONS), load)
        if isinstance(result.data, list):
            self.local_cache.set(SIZE_OPTIONS_KEY, result.data)
        return result
