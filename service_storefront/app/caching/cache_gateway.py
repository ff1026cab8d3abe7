"""
Redis-backed cache gateway for the storefront.

Owns key naming and the on-wire entry envelope. Every operation is
best-effort: transport failures, timeouts and undecodable payloads are
logged and reported as a miss or a ``False`` result, never raised.
"""

from __future__ import annotations

import asyncio
import json
import math
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Union
from urllib.parse import quote

import redis.asyncio as redis

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from .policies import CacheTag

KEY_DELIMITER = ":"

# Payloads that earlier clients wrote by accident and that must never be served.
_POISONED_PAYLOADS = ("[object Object]",)


def build_key(tag: Union[CacheTag, str], *ids: Any) -> str:
    """Build a cache key from a tag and owning identifiers.

    Identifier components are percent-encoded, so the delimiter and glob
    metacharacters cannot appear inside one and distinct identifier tuples
    never produce the same key.
    """
    tag_value = tag.value if isinstance(tag, CacheTag) else str(tag)
    parts = [tag_value] + [quote(str(component), safe="") for component in ids]
    return KEY_DELIMITER.join(parts)


def build_prefix(tag: Union[CacheTag, str], *ids: Any) -> str:
    """Prefix matching every key below ``build_key(tag, *ids)``."""
    return build_key(tag, *ids) + KEY_DELIMITER


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: Any
    stored_at: float
    ttl_seconds: int

    def age(self, now: float) -> float:
        return now - self.stored_at

    def dumps(self) -> str:
        return json.dumps(
            {"value": self.value, "stored_at": self.stored_at, "ttl_seconds": self.ttl_seconds},
            default=str,
        )

    @classmethod
    def loads(cls, key: str, raw: str) -> "CacheEntry":
        data = json.loads(raw)
        if not isinstance(data, dict) or "value" not in data or "stored_at" not in data:
            raise ValueError("not a cache entry envelope")
        return cls(
            key=key,
            value=data["value"],
            stored_at=float(data["stored_at"]),
            ttl_seconds=int(data.get("ttl_seconds", 0)),
        )


class CacheGateway:
    """Keyed get/set/delete facade over the remote cache store."""

    def __init__(
        self,
        redis_url: Optional[str] = None,
        client: Optional[redis.Redis] = None,
        metrics: Optional[MetricsCollector] = None,
        socket_timeout: float = 2.0,
        enabled: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        self.redis_url = redis_url
        self.redis: Optional[redis.Redis] = client
        self.metrics = metrics
        self.socket_timeout = socket_timeout
        self.enabled = enabled
        self.clock = clock
        self.logger = get_logger("storefront.cache.gateway")

    async def start(self):
        """Create the client and ping it. An unreachable cache only degrades latency."""
        if not self.enabled:
            self.logger.info("Cache disabled, serving from source of record only")
            return

        if self.redis is None:
            self.redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=self.socket_timeout,
                socket_timeout=self.socket_timeout,
                health_check_interval=30,
            )

        if await self.health_check():
            self.logger.info("Cache gateway started")
        else:
            self.logger.warning("Cache unreachable at startup, continuing degraded")

    async def stop(self):
        if self.redis is not None:
            await self.redis.aclose()
            self.redis = None
            self.logger.info("Cache gateway stopped")

    @property
    def available(self) -> bool:
        return self.enabled and self.redis is not None

    async def health_check(self) -> bool:
        if not self.available:
            return False
        try:
            return bool(await self.redis.ping())
        except Exception as e:
            self.logger.warning("Cache health check failed", error=str(e))
            return False

    async def get_entry(self, key: str, timeout: Optional[float] = None) -> Optional[CacheEntry]:
        """Read an entry, resolving to ``None`` on miss, error or timeout."""
        if not self.available:
            return None

        try:
            if timeout is not None:
                raw = await asyncio.wait_for(self.redis.get(key), timeout=timeout)
            else:
                raw = await self.redis.get(key)
        except asyncio.TimeoutError:
            self.logger.warning("Cache read timed out", key=key, timeout=timeout)
            self._record_error("get_timeout")
            return None
        except Exception as e:
            self.logger.error("Cache get error", key=key, error=str(e))
            self._record_error("get")
            return None

        if raw is None:
            return None
        return self._decode(key, raw)

    async def get(self, key: str, timeout: Optional[float] = None) -> Any:
        entry = await self.get_entry(key, timeout=timeout)
        return entry.value if entry is not None else None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        """Replace the entry at ``key``. ``None`` values are never cached."""
        if not self.available or value is None:
            return False

        entry = CacheEntry(key=key, value=value, stored_at=self.clock(), ttl_seconds=int(ttl_seconds))
        try:
            await self.redis.set(key, entry.dumps(), ex=max(1, math.ceil(ttl_seconds)))
            return True
        except Exception as e:
            self.logger.error("Cache set error", key=key, error=str(e))
            self._record_error("set")
            return False

    async def delete(self, key: str) -> bool:
        if not self.available:
            return False
        try:
            await self.redis.delete(key)
            return True
        except Exception as e:
            self.logger.error("Cache delete error", key=key, error=str(e))
            self._record_error("delete")
            return False

    async def keys(self, prefix: str) -> List[str]:
        """List keys starting with ``prefix``; empty when the store is unreachable."""
        if not self.available:
            return []
        try:
            return await self._scan(prefix)
        except Exception as e:
            self.logger.error("Cache scan error", prefix=prefix, error=str(e))
            self._record_error("scan")
            return []

    async def _scan(self, prefix: str) -> List[str]:
        return [key async for key in self.redis.scan_iter(match=f"{prefix}*", count=200)]

    async def delete_pattern(self, prefix: str) -> int:
        """Delete every key starting with ``prefix``; returns the count, or -1 on failure."""
        if not self.available:
            return 0
        try:
            keys = await self._scan(prefix)
            if keys:
                await self.redis.delete(*keys)
            return len(keys)
        except Exception as e:
            self.logger.error("Cache pattern delete error", prefix=prefix, error=str(e))
            self._record_error("delete_pattern")
            return -1

    async def ttl(self, key: str) -> Optional[int]:
        """Physical seconds left on ``key``, ``None`` when absent or unknown."""
        if not self.available:
            return None
        try:
            remaining = await self.redis.ttl(key)
        except Exception as e:
            self.logger.error("Cache ttl error", key=key, error=str(e))
            return None
        return remaining if remaining is not None and remaining >= 0 else None

    def _decode(self, key: str, raw: str) -> Optional[CacheEntry]:
        if raw in _POISONED_PAYLOADS or raw.lstrip().startswith("<"):
            self.logger.warning("Ignoring non-JSON cache payload", key=key)
            self._record_error("decode")
            return None
        try:
            return CacheEntry.loads(key, raw)
        except (ValueError, TypeError) as e:
            self.logger.warning("Ignoring undecodable cache payload", key=key, error=str(e))
            self._record_error("decode")
            return None

    def _record_error(self, operation: str):
        if self.metrics:
            self.metrics.record_cache_error(operation)
