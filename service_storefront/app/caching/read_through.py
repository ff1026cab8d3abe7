"""
Read-through accessor: cache-aside with stale-while-revalidate.
"""

from __future__ import annotations

import time
from contextlib import nullcontext
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from .background import BackgroundTaskRunner
from .cache_gateway import CacheGateway
from .policies import CacheStatus, ResourcePolicy

Loader = Callable[[], Awaitable[Any]]


@dataclass
class CachedRead:
    """A resource value plus where it came from."""

    data: Any
    cache_status: CacheStatus
    cache_key: str
    ttl_remaining: Optional[int] = None
    data_source: Optional[str] = None

    @property
    def from_cache(self) -> bool:
        return self.cache_status is not CacheStatus.MISS

    def headers(self) -> Dict[str, str]:
        headers = {
            "X-Cache-Status": self.cache_status.value,
            "X-Cache-Key": self.cache_key,
            "X-Data-Source": self.data_source or ("REDIS_CACHE" if self.from_cache else "DATABASE"),
        }
        if self.ttl_remaining is not None:
            headers["X-Cache-TTL"] = str(self.ttl_remaining)
        return headers


class ReadThroughAccessor:
    """Serves a resource from cache when possible, else from the source of record.

    HIT and STALE entries are returned immediately; a STALE hit also schedules
    one background refresh per key. A MISS (absent, expired, unreadable or
    timed out) loads synchronously and populates the cache in the background.
    Loader errors propagate to the caller untouched.

    Writers call ``mark_written`` before invalidating. A populate or refresh
    whose load started before such a mark never leaves its value in the cache:
    it skips the write, or deletes the key again if the mark landed while the
    write was in flight.
    """

    def __init__(
        self,
        gateway: CacheGateway,
        background: BackgroundTaskRunner,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.gateway = gateway
        self.background = background
        self.metrics = metrics
        self.clock = clock
        self.logger = get_logger("storefront.cache.read_through")
        self._refreshing: Set[str] = set()

        # Write epochs only matter while a load is in flight; both maps are
        # dropped whenever the last one finishes.
        self._epoch = 0
        self._in_flight = 0
        self._written: Dict[str, int] = {}
        self._written_prefixes: Dict[str, int] = {}

    def mark_written(self, key: Optional[str] = None, prefix: Optional[str] = None) -> None:
        """Record that ``key`` (or every key under ``prefix``) changed at the source of record."""
        if not self._in_flight:
            return
        self._epoch += 1
        if key is not None:
            self._written[key] = self._epoch
        if prefix is not None:
            self._written_prefixes[prefix] = self._epoch

    async def fetch(self, key: str, policy: ResourcePolicy, loader: Loader) -> CachedRead:
        entry = await self.gateway.get_entry(key, timeout=policy.read_timeout)
        if entry is not None:
            age = entry.age(self.clock())
            status = policy.window.classify(age)
            if status is not CacheStatus.MISS:
                self._record(policy, status)
                if status is CacheStatus.STALE:
                    self._schedule_refresh(key, policy, loader)
                return CachedRead(entry.value, status, key, policy.window.remaining(age))

        self._record(policy, CacheStatus.MISS)
        started = self._begin_load()
        try:
            with self._timed(policy):
                data = await loader()
        except BaseException:
            self._end_load()
            raise

        if data is None:
            self._end_load()
        else:
            task = self.background.submit(
                self._populate(key, data, policy, started),
                name=f"cache-populate:{key}",
            )
            if task is None:
                self._end_load()
        return CachedRead(data, CacheStatus.MISS, key)

    def _schedule_refresh(self, key: str, policy: ResourcePolicy, loader: Loader) -> None:
        if key in self._refreshing:
            self.logger.debug("Refresh already in flight", key=key)
            return
        self._refreshing.add(key)
        task = self.background.submit(self._refresh(key, policy, loader), name=f"cache-refresh:{key}")
        if task is None:
            self._refreshing.discard(key)

    async def _populate(self, key: str, data: Any, policy: ResourcePolicy, started: int) -> None:
        try:
            await self._store(key, data, policy, started)
        finally:
            self._end_load()

    async def _refresh(self, key: str, policy: ResourcePolicy, loader: Loader) -> None:
        started = self._begin_load()
        try:
            with self._timed(policy):
                data = await loader()
            if data is None:
                await self.gateway.delete(key)
            else:
                await self._store(key, data, policy, started)
            self.logger.debug("Stale entry refreshed", key=key)
        finally:
            self._refreshing.discard(key)
            self._end_load()

    async def _store(self, key: str, data: Any, policy: ResourcePolicy, started: int) -> None:
        if self._written_since(key, started):
            self.logger.debug("Key written during load, not caching", key=key)
            return
        await self.gateway.set(key, data, policy.ttl_seconds)
        if self._written_since(key, started):
            self.logger.debug("Key written while caching, dropping entry", key=key)
            await self.gateway.delete(key)

    def _begin_load(self) -> int:
        self._in_flight += 1
        return self._epoch

    def _end_load(self) -> None:
        self._in_flight -= 1
        if not self._in_flight:
            self._written.clear()
            self._written_prefixes.clear()

    def _written_since(self, key: str, started: int) -> bool:
        if self._written.get(key, 0) > started:
            return True
        return any(
            epoch > started and key.startswith(prefix) for prefix, epoch in self._written_prefixes.items()
        )

    def _timed(self, policy: ResourcePolicy):
        if self.metrics:
            return self.metrics.time_source_load(policy.resource)
        return nullcontext()

    def _record(self, policy: ResourcePolicy, status: CacheStatus) -> None:
        self.logger.debug("Cache lookup", resource=policy.resource, status=status.value)
        if self.metrics:
            self.metrics.record_cache_lookup(policy.resource, status.value)
