"""
Storefront service for CozyBerries.

Serves orders, addresses, wishlist, cart, ratings and size options through a
cache-aside layer in front of PostgreSQL, and invalidates the affected cache
entries after every write.
"""

import time
from typing import Any, Callable, Dict, Optional

from fastapi import Body, Depends, Query, Request
from fastapi.responses import JSONResponse

from shared.base_service import BaseService
from shared.config import ServiceConfig

from .auth.jwt_auth import AuthContext, JWTAuthenticator
from .caching.background import BackgroundTaskRunner
from .caching.cache_gateway import CacheGateway
from .caching.invalidator import WritePathInvalidator
from .caching.local_cache import LocalTTLCache
from .caching.read_through import CachedRead, ReadThroughAccessor
from .domain.addresses import AddressService
from .domain.catalog import SizeOptionsService
from .domain.collections import CART, WISHLIST, CollectionService
from .domain.diagnostics import CacheDiagnostics
from .domain.models import (
    AddressRequest,
    AdminOrderUpdate,
    CollectionRequest,
    CreateOrderRequest,
    PaymentConfirmRequest,
    RatingRequest,
    WishlistItemRequest,
)
from .domain.orders import OrderService
from .domain.payments import PaymentService
from .domain.ratings import RatingService
from .persistence.postgres import StorefrontRepository


def cached_response(result: CachedRead, status_code: int = 200) -> JSONResponse:
    return JSONResponse(content=result.data, status_code=status_code, headers=result.headers())


class StorefrontService(BaseService):
    """Storefront service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        gateway: Optional[CacheGateway] = None,
        repository: Optional[StorefrontRepository] = None,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__("storefront", 8000, config=config)

        self.gateway = gateway or CacheGateway(
            redis_url=self.config.redis_url,
            metrics=self.metrics,
            socket_timeout=self.config.redis_socket_timeout,
            enabled=self.config.cache_enabled,
            clock=clock,
        )
        self.repository = repository or StorefrontRepository(self.config.postgres_dsn)
        self.background = BackgroundTaskRunner(metrics=self.metrics)
        self.reader = ReadThroughAccessor(self.gateway, self.background, metrics=self.metrics, clock=clock)
        self.invalidator = WritePathInvalidator(self.gateway, metrics=self.metrics, reader=self.reader)
        self.authenticator = JWTAuthenticator(
            secret=self.config.jwt_secret,
            algorithm=self.config.jwt_algorithm,
            issuer=self.config.jwt_issuer,
            audience=self.config.jwt_audience,
        )

        self.orders = OrderService(self.repository, self.reader, self.invalidator, metrics=self.metrics)
        self.addresses = AddressService(self.repository, self.reader, self.invalidator)
        self.wishlist = CollectionService(WISHLIST, self.repository, self.reader, self.invalidator)
        self.cart = CollectionService(CART, self.repository, self.reader, self.invalidator)
        self.ratings = RatingService(self.repository, self.reader, self.invalidator)
        self.sizes = SizeOptionsService(
            self.repository, self.reader, LocalTTLCache(self.config.size_options_memory_ttl)
        )
        self.payments = PaymentService(self.repository, self.invalidator, metrics=self.metrics)
        self.diagnostics = CacheDiagnostics(
            self.gateway,
            self.invalidator,
            orders=self.orders,
            addresses=self.addresses,
            wishlist=self.wishlist,
            cart=self.cart,
        )

        self._setup_storefront_routes()

    def _setup_storefront_routes(self):
        """Set up storefront routes."""

        async def current_auth(request: Request) -> AuthContext:
            return await self.authenticator.authenticate(request)

        @self.app.get("/")
        async def root():
            return {
                "service": "storefront",
                "message": "CozyBerries - Storefront Service",
                "version": "1.0.0",
                "capabilities": ["orders", "addresses", "wishlist", "cart", "ratings", "sizes", "payments"]
            }

        # Orders

        @self.app.get("/orders")
        async def list_orders(
            limit: int = Query(10),
            offset: int = Query(0),
            status: Optional[str] = Query(None),
            auth: AuthContext = Depends(current_auth),
        ):
            return cached_response(await self.orders.list_orders(auth, limit=limit, offset=offset, status=status))

        @self.app.post("/orders")
        async def create_order(request: CreateOrderRequest, auth: AuthContext = Depends(current_auth)):
            return await self.orders.create_order(auth, request)

        @self.app.get("/orders/{order_id}")
        async def get_order(order_id: str, auth: AuthContext = Depends(current_auth)):
            return cached_response(await self.orders.get_order_details(auth, order_id))

        @self.app.patch("/orders/{order_id}")
        async def update_order(
            order_id: str,
            updates: Dict[str, Any] = Body(...),
            auth: AuthContext = Depends(current_auth),
        ):
            order = await self.orders.update_order(auth, order_id, updates)
            return {"order": order, "message": "Order updated successfully"}

        @self.app.put("/admin/orders/{order_id}")
        async def admin_update_order(
            order_id: str,
            update: AdminOrderUpdate,
            auth: AuthContext = Depends(current_auth),
        ):
            return await self.orders.admin_update_order(auth, order_id, update)

        # Addresses

        @self.app.get("/profile/addresses")
        async def list_addresses(auth: AuthContext = Depends(current_auth)):
            return cached_response(await self.addresses.list_addresses(auth))

        @self.app.post("/profile/addresses", status_code=201)
        async def create_address(request: AddressRequest, auth: AuthContext = Depends(current_auth)):
            return await self.addresses.create_address(auth, request)

        @self.app.get("/profile/addresses/{address_id}")
        async def get_address(address_id: str, auth: AuthContext = Depends(current_auth)):
            return await self.addresses.get_address(auth, address_id)

        @self.app.put("/profile/addresses/{address_id}")
        async def update_address(
            address_id: str,
            request: AddressRequest,
            auth: AuthContext = Depends(current_auth),
        ):
            return await self.addresses.update_address(auth, address_id, request)

        @self.app.delete("/profile/addresses/{address_id}")
        async def delete_address(address_id: str, auth: AuthContext = Depends(current_auth)):
            await self.addresses.delete_address(auth, address_id)
            return {"message": "Address deleted successfully"}

        # Wishlist and cart

        @self.app.get("/wishlist")
        async def get_wishlist(auth: AuthContext = Depends(current_auth)):
            result = await self.wishlist.get_items(auth)
            return JSONResponse(content={"items": result.data}, headers=result.headers())

        @self.app.put("/wishlist")
        async def replace_wishlist(request: CollectionRequest, auth: AuthContext = Depends(current_auth)):
            return {"items": await self.wishlist.replace_items(auth, request.items)}

        @self.app.post("/wishlist")
        async def add_to_wishlist(item: WishlistItemRequest, auth: AuthContext = Depends(current_auth)):
            return {"items": await self.wishlist.add_item(auth, item.model_dump())}

        @self.app.delete("/wishlist/{product_id}")
        async def remove_from_wishlist(product_id: str, auth: AuthContext = Depends(current_auth)):
            return {"items": await self.wishlist.remove_item(auth, product_id)}

        @self.app.delete("/wishlist")
        async def clear_wishlist(auth: AuthContext = Depends(current_auth)):
            await self.wishlist.clear(auth)
            return {"items": []}

        @self.app.get("/cart")
        async def get_cart(auth: AuthContext = Depends(current_auth)):
            result = await self.cart.get_items(auth)
            return JSONResponse(content={"items": result.data}, headers=result.headers())

        @self.app.put("/cart")
        async def replace_cart(request: CollectionRequest, auth: AuthContext = Depends(current_auth)):
            return {"items": await self.cart.replace_items(auth, request.items)}

        @self.app.delete("/cart")
        async def clear_cart(auth: AuthContext = Depends(current_auth)):
            await self.cart.clear(auth)
            return {"items": []}

        # Ratings and catalog

        @self.app.get("/ratings")
        async def list_ratings(product_id: Optional[str] = Query(None)):
            return cached_response(await self.ratings.list_ratings(product_id))

        @self.app.post("/ratings")
        async def submit_rating(request: RatingRequest, auth: AuthContext = Depends(current_auth)):
            rating = await self.ratings.submit_rating(auth, request)
            return {"success": True, "rating": rating}

        @self.app.get("/sizes/options")
        async def size_options():
            result = await self.sizes.get_size_options()
            response = cached_response(result)
            response.headers["Cache-Control"] = "public, s-maxage=120, stale-while-revalidate=600"
            return response

        # Payments

        @self.app.post("/payments/confirm")
        async def confirm_payment(request: PaymentConfirmRequest, auth: AuthContext = Depends(current_auth)):
            return await self.payments.confirm_upi_payment(auth, request.order_id)

        # Cache diagnostics

        @self.app.get("/debug/user-cache")
        async def user_cache_stats(
            user_id: Optional[str] = Query(None),
            auth: AuthContext = Depends(current_auth),
        ):
            return await self.diagnostics.user_stats(self._target_user(auth, user_id))

        @self.app.delete("/debug/user-cache")
        async def clear_user_cache(
            user_id: Optional[str] = Query(None),
            auth: AuthContext = Depends(current_auth),
        ):
            return await self.diagnostics.clear_user(self._target_user(auth, user_id))

        @self.app.post("/cache/warm")
        async def warm_cache(auth: AuthContext = Depends(current_auth)):
            auth.require_user()
            return {"warmed": await self.diagnostics.warm_user(auth)}

    @staticmethod
    def _target_user(auth: AuthContext, user_id: Optional[str]) -> str:
        """Callers inspect their own cache; admins may name another user."""
        caller = auth.require_user()
        if user_id is None or user_id == caller:
            return caller
        auth.require_admin()
        return user_id

    async def _check_dependencies(self):
        """Report cache and database reachability; a down cache is degraded, not fatal."""
        return {
            "redis": "ok" if await self.gateway.health_check() else "degraded",
            "postgres": "ok" if await self.repository.health_check() else "error",
        }

    async def start(self):
        """Start storefront service components."""
        self.background.start()
        await self.repository.start()
        await self.gateway.start()
        self.logger.info("Storefront service started")

    async def stop(self):
        """Stop storefront service components."""
        await self.background.stop(timeout=self.config.background_drain_timeout)
        await self.gateway.stop()
        await self.repository.stop()
        self.logger.info("Storefront service stopped")


def create_app():
    """Create storefront service application."""
    service = StorefrontService()
    return service.app


if __name__ == "__main__":
    service = StorefrontService()
    service.run()
