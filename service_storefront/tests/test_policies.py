"""
Unit tests for cache policies and key building.
"""

import pytest

from service_storefront.app.caching.cache_gateway import build_key, build_prefix
from service_storefront.app.caching.policies import (
    DEFAULT_POLICIES,
    USER_SCOPED_TAGS,
    CacheStatus,
    CacheTag,
    ResourcePolicy,
    StalenessWindow,
    get_policy,
)


class TestStalenessWindow:

    @pytest.fixture
    def window(self):
        return StalenessWindow(60, 300)

    @pytest.mark.parametrize("age,expected", [
        (0, CacheStatus.HIT),
        (59, CacheStatus.HIT),
        (59.999, CacheStatus.HIT),
        (60, CacheStatus.STALE),
        (120, CacheStatus.STALE),
        (299.9, CacheStatus.STALE),
        (300, CacheStatus.MISS),
        (301, CacheStatus.MISS),
    ])
    def test_classify_boundaries(self, window, age, expected):
        assert window.classify(age) is expected

    def test_future_timestamps_count_as_fresh(self, window):
        assert window.classify(-5) is CacheStatus.HIT
        assert window.remaining(-5) == 300

    def test_remaining(self, window):
        assert window.remaining(100) == 200
        assert window.remaining(400) == 0

    @pytest.mark.parametrize("fresh,stale", [(0, 10), (10, 10), (20, 10), (-1, 5)])
    def test_rejects_invalid_windows(self, fresh, stale):
        with pytest.raises(ValueError):
            StalenessWindow(fresh, stale)


class TestResourcePolicies:

    def test_every_tag_has_a_valid_default(self):
        for tag in CacheTag:
            policy = get_policy(tag)
            assert policy.tag is tag
            assert 0 < policy.window.fresh_ttl < policy.window.stale_ttl
            assert policy.read_timeout > 0

    def test_physical_ttl_is_stale_ttl(self):
        assert get_policy(CacheTag.ORDERS).ttl_seconds == 900
        assert get_policy(CacheTag.CART).ttl_seconds == 7200

    def test_overrides_take_precedence(self):
        override = ResourcePolicy(CacheTag.RATINGS, StalenessWindow(1, 2), read_timeout=0.1)
        assert get_policy(CacheTag.RATINGS, {CacheTag.RATINGS: override}) is override
        assert get_policy(CacheTag.ORDERS, {CacheTag.RATINGS: override}) is DEFAULT_POLICIES[CacheTag.ORDERS]

    def test_resource_label(self):
        assert get_policy(CacheTag.ORDER_DETAILS).resource == "order_details"

    def test_user_scoped_tags_are_the_cached_collections(self):
        assert {tag.value for tag in USER_SCOPED_TAGS} == {
            "user:orders",
            "user:order",
            "user:addresses",
            "user:wishlist",
            "user:cart",
        }
        assert set(DEFAULT_POLICIES) == set(CacheTag)


class TestKeyBuilding:

    def test_key_is_deterministic(self):
        for tag in CacheTag:
            ids = ("user-1", "list", "limit:10-offset:0")
            assert build_key(tag, *ids) == build_key(tag, *ids)

    def test_key_layout(self):
        assert build_key(CacheTag.ADDRESSES, "user-1") == "user:addresses:user-1"
        assert build_key(CacheTag.ORDER_DETAILS, "user-1", "order-9") == "user:order:user-1:order-9"
        assert build_key(CacheTag.SIZE_OPTIONS) == "sizes:options"

    def test_components_cannot_collide(self):
        assert build_key(CacheTag.ORDERS, "a:b", "c") != build_key(CacheTag.ORDERS, "a", "b:c")
        assert build_key(CacheTag.CART, "user*") != build_key(CacheTag.CART, "user")

    def test_glob_characters_are_encoded(self):
        key = build_key(CacheTag.CART, "u*?[x]")
        assert "*" not in key and "?" not in key and "[" not in key

    def test_prefix_only_covers_nested_keys(self):
        prefix = build_prefix(CacheTag.ORDERS, "user-1")
        assert build_key(CacheTag.ORDERS, "user-1", "list", "p1").startswith(prefix)
        assert not build_key(CacheTag.ORDERS, "user-10", "list", "p1").startswith(prefix)
