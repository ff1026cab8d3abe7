"""
Request models for storefront endpoints.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class OrderStatus(str, Enum):
    """Order lifecycle states."""
    PAYMENT_PENDING = "payment_pending"
    PAYMENT_CONFIRMED = "payment_confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class OrderItem(BaseModel):
    id: str = Field(..., min_length=1, description="Product ID")
    name: str = Field(..., description="Product name at time of purchase")
    price: float = Field(..., ge=0, description="Unit price")
    quantity: int = Field(..., ge=1, description="Units ordered")
    image: Optional[str] = Field(None, description="Product image URL")
    size: Optional[str] = None
    color: Optional[str] = None


class CreateOrderRequest(BaseModel):
    """Request model for order creation."""
    items: List[OrderItem] = Field(default_factory=list, description="Line items")
    shipping_address_id: Optional[str] = Field(None, description="Caller's saved address")
    billing_address_id: Optional[str] = Field(None, description="Defaults to the shipping address")
    notes: Optional[str] = Field(None, max_length=1000)


class AdminOrderUpdate(BaseModel):
    """Request model for an administrator changing an order."""
    status: Optional[OrderStatus] = None
    tracking_number: Optional[str] = Field(None, max_length=128)
    notes: Optional[str] = Field(None, max_length=1000)


class AddressRequest(BaseModel):
    address_type: str = Field("home", description="home, work or other")
    label: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None
    address_line_1: Optional[str] = None
    address_line_2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: str = "India"
    is_default: bool = False


class CollectionRequest(BaseModel):
    """Full replacement of a wishlist or cart."""
    items: List[Dict[str, Any]] = Field(default_factory=list)


class WishlistItemRequest(BaseModel):
    """Single wishlist addition; extra product fields are kept as given."""
    model_config = {"extra": "allow"}

    id: str = Field(..., min_length=1, description="Product ID")


class RatingRequest(BaseModel):
    product_id: str = Field(..., min_length=1)
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=2000)
    images: List[str] = Field(default_factory=list, description="Already-hosted image URLs")


class PaymentConfirmRequest(BaseModel):
    """Request model for manual UPI payment confirmation."""
    order_id: str = Field(..., min_length=1, alias="orderId")

    model_config = {"populate_by_name": True}
