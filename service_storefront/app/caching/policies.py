"""
Cache tags, staleness windows and per-resource read policies.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional


class CacheTag(str, Enum):
    ORDERS = "user:orders"
    ORDER_DETAILS = "user:order"
    ADDRESSES = "user:addresses"
    WISHLIST = "user:wishlist"
    CART = "user:cart"
    RATINGS = "ratings"
    SIZE_OPTIONS = "sizes:options"


# Tags whose keys start with the owning user's id.
USER_SCOPED_TAGS = (
    CacheTag.ORDERS,
    CacheTag.ORDER_DETAILS,
    CacheTag.ADDRESSES,
    CacheTag.WISHLIST,
    CacheTag.CART,
)


class CacheStatus(str, Enum):
    HIT = "HIT"
    STALE = "STALE"
    MISS = "MISS"


@dataclass(frozen=True)
class StalenessWindow:
    """Age thresholds in seconds: fresh below ``fresh_ttl``, stale below ``stale_ttl``."""

    fresh_ttl: float
    stale_ttl: float

    def __post_init__(self) -> None:
        if not 0 < self.fresh_ttl < self.stale_ttl:
            raise ValueError(
                f"fresh_ttl must be positive and below stale_ttl "
                f"(got fresh={self.fresh_ttl}, stale={self.stale_ttl})"
            )

    def classify(self, age: float) -> CacheStatus:
        # Entries stamped slightly in the future by clock skew count as brand new.
        age = max(0.0, age)
        if age < self.fresh_ttl:
            return CacheStatus.HIT
        if age < self.stale_ttl:
            return CacheStatus.STALE
        return CacheStatus.MISS

    def remaining(self, age: float) -> int:
        return max(0, int(self.stale_ttl - max(0.0, age)))


@dataclass(frozen=True)
class ResourcePolicy:
    tag: CacheTag
    window: StalenessWindow
    read_timeout: float = 1.0

    @property
    def resource(self) -> str:
        """Metric label for the resource."""
        return self.tag.name.lower()

    @property
    def ttl_seconds(self) -> int:
        """Physical expiry in the remote store."""
        return int(self.window.stale_ttl)


DEFAULT_POLICIES: Dict[CacheTag, ResourcePolicy] = {
    CacheTag.ORDERS: ResourcePolicy(CacheTag.ORDERS, StalenessWindow(120, 900), read_timeout=1.5),
    CacheTag.ORDER_DETAILS: ResourcePolicy(CacheTag.ORDER_DETAILS, StalenessWindow(60, 600)),
    CacheTag.ADDRESSES: ResourcePolicy(CacheTag.ADDRESSES, StalenessWindow(300, 1800)),
    CacheTag.WISHLIST: ResourcePolicy(CacheTag.WISHLIST, StalenessWindow(300, 1800)),
    CacheTag.CART: ResourcePolicy(CacheTag.CART, StalenessWindow(300, 7200)),
    CacheTag.RATINGS: ResourcePolicy(CacheTag.RATINGS, StalenessWindow(60, 900), read_timeout=0.5),
    CacheTag.SIZE_OPTIONS: ResourcePolicy(CacheTag.SIZE_OPTIONS, StalenessWindow(600, 7200), read_timeout=0.3),
}


def get_policy(tag: CacheTag, overrides: Optional[Dict[CacheTag, ResourcePolicy]] = None) -> ResourcePolicy:
    if overrides and tag in overrides:
        return overrides[tag]
    return DEFAULT_POLICIES[tag]
