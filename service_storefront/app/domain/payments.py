"""
Manual UPI payment confirmation.

The shopper pays out of band (QR code or UPI link) and then confirms here.
Recording the payment and advancing the order are two separate writes with
no surrounding transaction: if the order update fails, the freshly inserted
payment row is deleted again. Two concurrent confirmations for the same order
can still both pass the duplicate check; that gap is known and left as is.
"""

import secrets
import time
from datetime import datetime, timezone
from typing import Any, Dict

from shared.errors import ConflictError, NotFoundError, ServiceError, SourceOfRecordError
from shared.logging import get_logger
from ..auth.jwt_auth import AuthContext
from ..caching.invalidator import WritePathInvalidator
from ..persistence.postgres import StorefrontRepository
from .models import OrderStatus


def _payment_reference() -> str:
    return f"upi_manual_{int(time.time() * 1000)}_{secrets.token_hex(4)[:7]}"


class PaymentService:

    def __init__(
        self,
        repository: StorefrontRepository,
        invalidator: WritePathInvalidator,
        metrics=None,
    ):
        self.repository = repository
        self.invalidator = invalidator
        self.metrics = metrics
        self.logger = get_logger("storefront.payments")

    async def confirm_upi_payment(self, auth: AuthContext, order_id: str) -> Dict[str, Any]:
        user_id = auth.require_user()
        order_id = order_id.strip()

        order = await self.repository.get_order(order_id, user_id=user_id)
        if order is None:
            raise NotFoundError("Order")
        if order["status"] != OrderStatus.PAYMENT_PENDING.value:
            raise ConflictError("Payment already confirmed for this order")
        if await self.repository.list_payments(order_id):
            raise ConflictError("Payment already exists for this order")

        payment = await self.repository.create_payment({
            "order_id": order_id,
            "user_id": user_id,
            "payment_reference": _payment_reference(),
            "payment_method": "upi",
            "gateway_provider": "manual",
            "amount": order["total_amount"],
            "currency": order.get("currency") or "INR",
            "gateway_response": {
                "method": "upi_qr_or_link",
                "confirmed_by_user": True,
                "confirmed_at": datetime.now(timezone.utc).isoformat(),
            },
            "status": "processing",
        })

        try:
            await self.repository.update_order(order_id, {"status": OrderStatus.PROCESSING.value})
        except SourceOfRecordError as e:
            self.logger.error("Order update failed after payment insert", order_id=order_id, error=e.message)
            await self._rollback_payment(payment["id"], order_id)
            raise ServiceError("Failed to confirm payment. Please try again.") from e

        await self.invalidator.orders_changed(order["user_id"], order_id)
        self.logger.info("UPI payment confirmed", order_id=order_id, payment_id=payment["id"])
        if self.metrics:
            self.metrics.record_event("payment_confirmed")
        return {"success": True, "payment_reference": payment["payment_reference"]}

    async def _rollback_payment(self, payment_id: str, order_id: str) -> None:
        try:
            await self.repository.delete_payment(payment_id)
        except SourceOfRecordError as e:
            self.logger.error(
                "Payment rollback failed, orphaned payment left behind",
                payment_id=payment_id,
                order_id=order_id,
                error=e.message,
            )
