"""
Order reads and writes, with caching on the read side and invalidation on
every write.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from shared.errors import NotFoundError, ValidationError
from shared.logging import get_logger
from ..auth.jwt_auth import AuthContext
from ..caching.cache_gateway import build_key
from ..caching.invalidator import WritePathInvalidator
from ..caching.policies import CacheTag, get_policy
from ..caching.read_through import CachedRead, ReadThroughAccessor
from ..persistence.postgres import StorefrontRepository
from .models import AdminOrderUpdate, CreateOrderRequest, OrderStatus

DELIVERY_CHARGE = 50.0
TAX_RATE = 0.10
CURRENCY = "INR"
MAX_PAGE_SIZE = 50

ADDRESS_SNAPSHOT_FIELDS = (
    "full_name", "address_line_1", "address_line_2", "city", "state",
    "postal_code", "country", "phone", "address_type", "label",
)
CUSTOMER_EDITABLE_FIELDS = frozenset({"notes"})


def calculate_order_summary(items: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Totals for a basket: flat delivery charge when non-empty, tax on the subtotal."""
    subtotal = round(sum(item["price"] * item["quantity"] for item in items), 2)
    delivery_charge = DELIVERY_CHARGE if items else 0.0
    tax_amount = round(subtotal * TAX_RATE, 2)
    return {
        "subtotal": subtotal,
        "delivery_charge": delivery_charge,
        "tax_amount": tax_amount,
        "total_amount": round(subtotal + delivery_charge + tax_amount, 2),
        "currency": CURRENCY,
    }


def orders_list_key(user_id: str, limit: int, offset: int, status: Optional[str]) -> str:
    filters = f"limit:{limit}-offset:{offset}"
    if status:
        filters += f"-status:{status}"
    return build_key(CacheTag.ORDERS, user_id, "list", filters)


def order_details_key(user_id: str, order_id: str) -> str:
    return build_key(CacheTag.ORDER_DETAILS, user_id, order_id)


def _generate_order_number() -> str:
    return f"CB{datetime.now(timezone.utc):%Y%m%d}-{secrets.token_hex(3).upper()}"


class OrderService:

    def __init__(
        self,
        repository: StorefrontRepository,
        reader: ReadThroughAccessor,
        invalidator: WritePathInvalidator,
        metrics=None,
    ):
        self.repository = repository
        self.reader = reader
        self.invalidator = invalidator
        self.metrics = metrics
        self.logger = get_logger("storefront.orders")

    async def list_orders(
        self, auth: AuthContext, limit: int = 10, offset: int = 0, status: Optional[str] = None
    ) -> CachedRead:
        user_id = auth.require_user()
        if limit < 1 or limit > MAX_PAGE_SIZE or offset < 0:
            raise ValidationError(
                f"limit must be between 1 and {MAX_PAGE_SIZE} and offset must not be negative"
            )

        async def load():
            orders = await self.repository.list_orders(user_id, limit=limit, offset=offset, status=status)
            return {"orders": orders, "limit": limit, "offset": offset, "status": status}

        return await self.reader.fetch(
            orders_list_key(user_id, limit, offset, status), get_policy(CacheTag.ORDERS), load
        )

    async def get_order_details(self, auth: AuthContext, order_id: str) -> CachedRead:
        """Order plus its payments. Only the owner can read it."""
        user_id = auth.require_user()

        async def load():
            order = await self.repository.get_order(order_id, user_id=user_id)
            if order is None:
                return None
            payments = await self.repository.list_payments(order_id)
            return {"order": order, "payments": payments}

        result = await self.reader.fetch(
            order_details_key(user_id, order_id), get_policy(CacheTag.ORDER_DETAILS), load
        )
        if result.data is None:
            raise NotFoundError("Order")
        return result

    async def create_order(self, auth: AuthContext, request: CreateOrderRequest) -> Dict[str, Any]:
        user_id = auth.require_user()
        if not request.items:
            raise ValidationError("Items are required")
        if not request.shipping_address_id:
            raise ValidationError("Shipping address is required")

        shipping = await self.repository.get_address(request.shipping_address_id, user_id)
        if shipping is None:
            raise ValidationError("Invalid shipping address")

        billing = shipping
        if request.billing_address_id and request.billing_address_id != request.shipping_address_id:
            billing = await self.repository.get_address(request.billing_address_id, user_id)
            if billing is None:
                raise ValidationError("Invalid billing address")

        items = [item.model_dump(exclude_none=True) for item in request.items]
        order = await self.repository.create_order({
            "user_id": user_id,
            "order_number": _generate_order_number(),
            "status": OrderStatus.PAYMENT_PENDING.value,
            "customer_email": auth.email,
            "customer_phone": shipping.get("phone"),
            "shipping_address": _address_snapshot(shipping),
            "billing_address": _address_snapshot(billing),
            "items": items,
            "notes": request.notes,
            **calculate_order_summary(items),
        })

        await self.invalidator.orders_changed(user_id)
        self.logger.info("Order created", order_id=order["id"], user_id=user_id)
        if self.metrics:
            self.metrics.record_event("order_created")
        return {"order": order, "payment_url": f"/payment/{order['id']}"}

    async def update_order(self, auth: AuthContext, order_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Customer-side edit; only the notes field may change."""
        user_id = auth.require_user()
        disallowed = sorted(set(updates) - CUSTOMER_EDITABLE_FIELDS)
        if disallowed:
            raise ValidationError("Only notes can be updated", details={"fields": disallowed})
        if not updates:
            raise ValidationError("No updates provided")

        existing = await self.repository.get_order(order_id, user_id=user_id)
        if existing is None:
            raise NotFoundError("Order")

        order = await self.repository.update_order(order_id, updates)
        await self.invalidator.orders_changed(existing["user_id"], order_id)
        if order is None:
            raise NotFoundError("Order")
        return order

    async def admin_update_order(
        self, auth: AuthContext, order_id: str, update: AdminOrderUpdate
    ) -> Dict[str, Any]:
        """Administrator edit. Cache keys belong to the order's owner, not the admin."""
        admin_id = auth.require_admin()
        fields = update.model_dump(exclude_none=True)
        if "status" in fields:
            fields["status"] = OrderStatus(fields["status"]).value
        if not fields:
            raise ValidationError("No updates provided")

        existing = await self.repository.get_order(order_id)
        if existing is None:
            raise NotFoundError("Order")
        order = await self.repository.update_order(order_id, fields)

        # The row can vanish between the read and the update; its cached copies still go.
        await self.invalidator.orders_changed(existing["user_id"], order_id)
        if order is None:
            raise NotFoundError("Order")
        self.logger.info(
            "Order updated by admin",
            order_id=order_id,
            owner_id=existing["user_id"],
            admin_id=admin_id,
            status=order.get("status"),
        )
        return order


def _address_snapshot(address: Dict[str, Any]) -> Dict[str, Any]:
    return {field: address.get(field) for field in ADDRESS_SNAPSHOT_FIELDS}
