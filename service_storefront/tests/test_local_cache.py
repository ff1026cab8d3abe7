"""
Unit tests for the in-process TTL cache.
"""

import pytest

from service_storefront.app.caching.local_cache import LocalTTLCache


class FakeClock:

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestLocalTTLCache:

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def cache(self, clock):
        return LocalTTLCache(120, clock=clock)

    def test_value_expires_after_ttl(self, cache, clock):
        cache.set("sizes", ["0-3m"])

        clock.now = 119.9
        assert cache.get("sizes") == ["0-3m"]

        clock.now = 120
        assert cache.get("sizes") is None
        assert len(cache) == 0

    def test_set_restarts_the_window(self, cache, clock):
        cache.set("sizes", ["a"])
        clock.now = 100
        cache.set("sizes", ["b"])
        clock.now = 200
        assert cache.get("sizes") == ["b"]

    def test_invalidate_and_clear(self, cache):
        cache.set("a", 1)
        cache.set("b", 2)

        cache.invalidate("a")
        cache.invalidate("missing")
        assert cache.get("a") is None
        assert len(cache) == 1

        cache.clear()
        assert len(cache) == 0

    def test_instances_are_independent(self, clock):
        first, second = LocalTTLCache(60, clock=clock), LocalTTLCache(60, clock=clock)
        first.set("k", 1)
        assert second.get("k") is None

    def test_rejects_non_positive_ttl(self):
        with pytest.raises(ValueError):
            LocalTTLCache(0)
