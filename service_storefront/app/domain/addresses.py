"""
Saved shipping addresses.
"""

from typing import Any, Dict, List

from shared.errors import NotFoundError, ValidationError
from shared.logging import get_logger
from ..auth.jwt_auth import AuthContext
from ..caching.cache_gateway import build_key
from ..caching.invalidator import WritePathInvalidator
from ..caching.policies import CacheTag, get_policy
from ..caching.read_through import CachedRead, ReadThroughAccessor
from ..persistence.postgres import StorefrontRepository
from .models import AddressRequest
from .validation import (
    validate_address_line,
    validate_city,
    validate_full_name,
    validate_phone,
    validate_postal_code,
    validate_state,
)


def clean_address(request: AddressRequest) -> Dict[str, Any]:
    """Validate every field and return the row to store."""
    if not (request.address_line_1 and request.city and request.state and request.postal_code):
        raise ValidationError("Address line 1, city, state, and postal code are required")

    return {
        "address_type": request.address_type,
        "label": request.label,
        "full_name": validate_full_name(request.full_name),
        "phone": validate_phone(request.phone),
        "address_line_1": validate_address_line(request.address_line_1),
        "address_line_2": request.address_line_2.strip() if request.address_line_2 else None,
        "city": validate_city(request.city),
        "state": validate_state(request.state),
        "postal_code": validate_postal_code(request.postal_code, request.country),
        "country": request.country,
        "is_default": request.is_default,
    }


class AddressService:

    def __init__(
        self,
        repository: StorefrontRepository,
        reader: ReadThroughAccessor,
        invalidator: WritePathInvalidator,
    ):
        self.repository = repository
        self.reader = reader
        self.invalidator = invalidator
        self.logger = get_logger("storefront.addresses")

    async def list_addresses(self, auth: AuthContext) -> CachedRead:
        user_id = auth.require_user()
        return await self.reader.fetch(
            build_key(CacheTag.ADDRESSES, user_id),
            get_policy(CacheTag.ADDRESSES),
            lambda: self.repository.list_addresses(user_id),
        )

    async def get_address(self, auth: AuthContext, address_id: str) -> Dict[str, Any]:
        user_id = auth.require_user()
        address = await self.repository.get_address(address_id, user_id)
        if address is None:
            raise NotFoundError("Address")
        return address

    async def create_address(self, auth: AuthContext, request: AddressRequest) -> Dict[str, Any]:
        user_id = auth.require_user()
        row = clean_address(request)

        existing: List[Dict[str, Any]] = await self.repository.list_addresses(user_id)
        # A shopper's first address is always the default.
        row["is_default"] = row["is_default"] or not existing

        address = await self.repository.create_address(user_id, row)
        await self.invalidator.addresses_changed(user_id)
        self.logger.info("Address created", address_id=address["id"], user_id=user_id)
        return address

    async def update_address(self, auth: AuthContext, address_id: str, request: AddressRequest) -> Dict[str, Any]:
        user_id = auth.require_user()
        row = clean_address(request)

        current = await self.repository.get_address(address_id, user_id)
        if current is None:
            raise NotFoundError("Address")
        if current.get("is_default") and not row["is_default"]:
            others = [a for a in await self.repository.list_addresses(user_id) if a["id"] != current["id"]]
            if not others:
                raise ValidationError("Cannot unset default on your only address")

        address = await self.repository.update_address(address_id, user_id, row)
        if address is None:
            raise NotFoundError("Address")
        await self.invalidator.addresses_changed(user_id)
        return address

    async def delete_address(self, auth: AuthContext, address_id: str) -> None:
        user_id = auth.require_user()
        if not await self.repository.deactivate_address(address_id, user_id):
            raise NotFoundError("Address")
        await self.invalidator.addresses_changed(user_id)
        self.logger.info("Address deleted", address_id=address_id, user_id=user_id)
