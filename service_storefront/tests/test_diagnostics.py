"""
Unit tests for per-user cache diagnostics built without the resource services.
"""

import json

import pytest

from service_storefront.app.auth.jwt_auth import AuthContext
from service_storefront.app.caching.cache_gateway import CacheGateway
from service_storefront.app.caching.invalidator import WritePathInvalidator
from service_storefront.app.domain.diagnostics import CacheDiagnostics
from service_storefront.tests.fakes import FakeRedis


class TestCacheOnlyDiagnostics:

    @pytest.fixture
    def redis_client(self):
        client = FakeRedis()
        for key in ("user:cart:u1", "user:orders:u1:list:limit%3A10-offset%3A0", "user:cart:u2"):
            client.store[key] = json.dumps({"value": [], "stored_at": 0, "ttl_seconds": 60})
            client.expiry[key] = 60
        return client

    @pytest.fixture
    def diagnostics(self, redis_client):
        gateway = CacheGateway(client=redis_client)
        return CacheDiagnostics(gateway, WritePathInvalidator(gateway))

    @pytest.mark.asyncio
    async def test_warm_skips_resources_without_a_service(self, diagnostics):
        summary = await diagnostics.warm_user(AuthContext(user_id="u1"))

        assert summary == {"orders": "skipped", "addresses": "skipped", "wishlist": "skipped", "cart": "skipped"}

    @pytest.mark.asyncio
    async def test_stats_and_clear_need_only_the_cache(self, diagnostics, redis_client):
        before = await diagnostics.user_stats("u1")
        cleared = await diagnostics.clear_user("u1")

        assert before["total_keys"] == 2
        assert cleared == {"user_id": "u1", "cleared": True, "nested_keys_deleted": 1}
        assert sorted(redis_client.store) == ["user:cart:u2"]
