"""
Shared fixtures for storefront service tests.
"""

import httpx
import pytest

from shared.config import ServiceConfig
from shared.test_helpers import MockTokenGenerator, Shopper
from service_storefront.app.caching.cache_gateway import CacheGateway
from service_storefront.app.main import StorefrontService
from service_storefront.tests.fakes import FakeRedis, InMemoryRepository

TEST_SECRET = "test-secret"


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def gateway(fake_redis):
    return CacheGateway(client=fake_redis)


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def config():
    return ServiceConfig("storefront", 8000, jwt_secret=TEST_SECRET, env="test")


@pytest.fixture
def service(config, gateway, repository):
    return StorefrontService(config=config, gateway=gateway, repository=repository)


@pytest.fixture
async def client(service):
    transport = httpx.ASGITransport(app=service.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http_client:
        yield http_client
    await service.background.stop(timeout=1.0)


@pytest.fixture
def tokens():
    return MockTokenGenerator(secret=TEST_SECRET)


@pytest.fixture
def shopper():
    return Shopper(user_id="user-1", email="asha@cozyberries.in")


@pytest.fixture
def other_shopper():
    return Shopper(user_id="user-2", email="ravi@cozyberries.in")


@pytest.fixture
def admin():
    return Shopper(user_id="admin-1", email="admin@cozyberries.in", role="admin")


@pytest.fixture
def auth_headers(tokens, shopper):
    return tokens.auth_headers(shopper)


@pytest.fixture
def admin_headers(tokens, admin):
    return tokens.auth_headers(admin)
