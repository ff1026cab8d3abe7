"""
Unit tests for the storefront service shell: health, metrics, auth and cache diagnostics.
"""

import pytest
from fastapi.testclient import TestClient

from shared.test_helpers import MockTokenGenerator
from service_storefront.app.caching.cache_gateway import CacheGateway
from service_storefront.app.main import StorefrontService
from service_storefront.tests.fakes import FakeRedis, InMemoryRepository


class TestStorefrontService:

    def test_root_endpoint(self, service):
        with TestClient(service.app) as client:
            response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "storefront"
        assert "orders" in data["capabilities"]

    def test_lifespan_starts_and_stops_components(self, config):
        redis_client = FakeRedis()

        service = StorefrontService(
            config=config, gateway=CacheGateway(client=redis_client), repository=InMemoryRepository()
        )
        with TestClient(service.app) as client:
            assert client.get("/health").json()["dependencies"] == {"redis": "ok", "postgres": "ok"}

        assert service.gateway.available is False

    @pytest.mark.asyncio
    async def test_health_reports_degraded_cache(self, client, service):
        await service.gateway.stop()

        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["dependencies"]["redis"] == "degraded"
        assert response.json()["status"] == "degraded"

    @pytest.mark.asyncio
    async def test_health_fails_when_database_is_down(self, client, repository):
        repository.fail_on["health_check"] = ConnectionError("database unreachable")

        response = await client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "error"

    @pytest.mark.asyncio
    async def test_metrics_endpoint(self, client, auth_headers):
        await client.get("/cart", headers=auth_headers)

        response = await client.get("/metrics")

        assert response.status_code == 200
        assert 'cache_lookups_total{resource="cart",status="MISS"} 1.0' in response.text
        assert 'cache_status="MISS"' in response.text

    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, client):
        response = await client.get("/", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"


class TestAuthentication:

    @pytest.mark.asyncio
    async def test_rejects_non_bearer_scheme(self, client):
        response = await client.get("/cart", headers={"Authorization": "Basic abc"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_rejects_wrong_signature(self, client, shopper):
        forged = MockTokenGenerator(secret="not-the-secret").auth_headers(shopper)
        response = await client.get("/cart", headers=forged)

        assert response.status_code == 401
        assert response.json()["code"] == "AUTHENTICATION_ERROR"

    @pytest.mark.asyncio
    async def test_rejects_expired_token(self, client, tokens, shopper):
        token = tokens.generate_access_token(shopper, expires_in=-60)
        response = await client.get("/cart", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_anonymous_session_cannot_read_user_data(self, client, tokens, shopper):
        response = await client.get("/cart", headers=tokens.auth_headers(shopper, isAnonymous=True))
        assert response.status_code == 401


class TestCacheDiagnostics:

    @pytest.mark.asyncio
    async def test_user_stats_lists_cached_keys(self, client, service, repository, auth_headers):
        repository.seed_order("user-1")
        await client.get("/orders", headers=auth_headers)
        await client.get("/cart", headers=auth_headers)
        await service.background.drain()

        response = await client.get("/debug/user-cache", headers=auth_headers)

        data = response.json()
        assert data["user_id"] == "user-1"
        assert data["cache_available"] is True
        assert data["total_keys"] == 2
        assert data["resources"]["cart"] == [{"key": "user:cart:user-1", "ttl": 7200}]
        assert len(data["resources"]["orders"]) == 1

    @pytest.mark.asyncio
    async def test_only_admins_inspect_other_users(self, client, auth_headers, admin_headers):
        forbidden = await client.get("/debug/user-cache", params={"user_id": "user-2"}, headers=auth_headers)
        allowed = await client.get("/debug/user-cache", params={"user_id": "user-2"}, headers=admin_headers)

        assert forbidden.status_code == 403
        assert allowed.status_code == 200
        assert allowed.json()["user_id"] == "user-2"

    @pytest.mark.asyncio
    async def test_clear_user_cache(self, client, service, fake_redis, repository, auth_headers):
        repository.seed_order("user-1")
        await client.get("/orders", headers=auth_headers)
        await client.get("/wishlist", headers=auth_headers)
        await service.background.drain()

        response = await client.delete("/debug/user-cache", headers=auth_headers)

        assert response.json()["cleared"] is True
        assert response.json()["nested_keys_deleted"] == 1
        assert fake_redis.store == {}

    @pytest.mark.asyncio
    async def test_warm_populates_every_resource(self, client, service, fake_redis, auth_headers):
        response = await client.post("/cache/warm", headers=auth_headers)
        await service.background.drain()

        assert response.json() == {
            "warmed": {"orders": "MISS", "addresses": "MISS", "wishlist": "MISS", "cart": "MISS"}
        }
        assert len(fake_redis.store) == 4

        again = await client.post("/cache/warm", headers=auth_headers)
        assert set(again.json()["warmed"].values()) == {"HIT"}
