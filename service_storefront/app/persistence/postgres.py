"""
PostgreSQL source of record for the storefront.

Rows are returned as JSON-ready dicts (UUIDs and timestamps as strings,
numerics as floats) so they can be cached and serialized without further
conversion. Not-found is ``None``; driver failures raise
``SourceOfRecordError``.
"""

import json
import uuid
from contextlib import asynccontextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

import asyncpg

from shared.errors import SourceOfRecordError
from shared.logging import get_logger

ORDER_COLUMNS = (
    "user_id", "order_number", "status", "subtotal", "delivery_charge", "tax_amount",
    "total_amount", "currency", "customer_email", "customer_phone", "shipping_address",
    "billing_address", "items", "notes", "tracking_number",
)
ADDRESS_COLUMNS = (
    "address_type", "label", "full_name", "phone", "address_line_1", "address_line_2",
    "city", "state", "postal_code", "country", "is_default",
)

SCHEMA = """
CREATE TABLE IF NOT EXISTS orders (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id VARCHAR(255) NOT NULL,
    order_number VARCHAR(64) NOT NULL UNIQUE,
    status VARCHAR(32) NOT NULL DEFAULT 'payment_pending',
    subtotal NUMERIC(12, 2) NOT NULL,
    delivery_charge NUMERIC(12, 2) NOT NULL DEFAULT 0,
    tax_amount NUMERIC(12, 2) NOT NULL DEFAULT 0,
    total_amount NUMERIC(12, 2) NOT NULL,
    currency VARCHAR(8) NOT NULL DEFAULT 'INR',
    customer_email VARCHAR(255),
    customer_phone VARCHAR(32),
    shipping_address JSONB NOT NULL,
    billing_address JSONB,
    items JSONB NOT NULL DEFAULT '[]',
    notes TEXT,
    tracking_number VARCHAR(128),
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_orders_user ON orders(user_id, created_at DESC);

CREATE TABLE IF NOT EXISTS payments (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    order_id UUID NOT NULL REFERENCES orders(id),
    user_id VARCHAR(255) NOT NULL,
    payment_reference VARCHAR(128) NOT NULL,
    payment_method VARCHAR(32) NOT NULL,
    gateway_provider VARCHAR(32) NOT NULL,
    amount NUMERIC(12, 2) NOT NULL,
    currency VARCHAR(8) NOT NULL DEFAULT 'INR',
    gateway_response JSONB NOT NULL DEFAULT '{}',
    status VARCHAR(32) NOT NULL,
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_payments_order ON payments(order_id);

CREATE TABLE IF NOT EXISTS user_addresses (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id VARCHAR(255) NOT NULL,
    address_type VARCHAR(32) NOT NULL DEFAULT 'home',
    label VARCHAR(100),
    full_name VARCHAR(100),
    phone VARCHAR(32),
    address_line_1 VARCHAR(200) NOT NULL,
    address_line_2 VARCHAR(200),
    city VARCHAR(100) NOT NULL,
    state VARCHAR(100) NOT NULL,
    postal_code VARCHAR(16) NOT NULL,
    country VARCHAR(100) NOT NULL DEFAULT 'India',
    is_default BOOLEAN NOT NULL DEFAULT FALSE,
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_addresses_user ON user_addresses(user_id) WHERE is_active;

CREATE TABLE IF NOT EXISTS user_collections (
    user_id VARCHAR(255) NOT NULL,
    kind VARCHAR(16) NOT NULL,
    items JSONB NOT NULL DEFAULT '[]',
    updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
    PRIMARY KEY (user_id, kind)
);

CREATE TABLE IF NOT EXISTS ratings (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id VARCHAR(255) NOT NULL,
    product_id VARCHAR(255) NOT NULL,
    rating SMALLINT NOT NULL CHECK (rating BETWEEN 1 AND 5),
    comment TEXT,
    images JSONB NOT NULL DEFAULT '[]',
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_ratings_product ON ratings(product_id);

CREATE TABLE IF NOT EXISTS sizes (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    slug VARCHAR(64) NOT NULL UNIQUE,
    name VARCHAR(100) NOT NULL,
    display_order INTEGER NOT NULL DEFAULT 0,
    age_slug VARCHAR(64)
);
"""


def _jsonable(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


NUMERIC_COLUMNS = frozenset({"subtotal", "delivery_charge", "tax_amount", "total_amount", "amount"})


def _param(column: str, value: Any) -> Any:
    if column in NUMERIC_COLUMNS and value is not None and not isinstance(value, Decimal):
        return Decimal(str(value))
    return value


def _uuid(value: Any) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _row(record: Optional[asyncpg.Record]) -> Optional[Dict[str, Any]]:
    if record is None:
        return None
    return {key: _jsonable(value) for key, value in record.items()}


def _rows(records) -> List[Dict[str, Any]]:
    return [_row(record) for record in records]


class StorefrontRepository:
    """asyncpg-backed access to orders, payments, addresses, collections, ratings and sizes."""

    def __init__(self, dsn: str):
        self.dsn = dsn
        self.logger = get_logger("storefront.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self):
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=2,
                max_size=10,
                command_timeout=30,
                init=self._init_connection,
            )
            async with self.pool.acquire() as conn:
                await conn.execute(SCHEMA)
            self.logger.info("PostgreSQL repository started")
        except (asyncpg.PostgresError, OSError) as e:
            self.logger.error("Failed to start PostgreSQL repository", error=str(e))
            raise SourceOfRecordError("start", details={"error": str(e)}) from e

    async def stop(self):
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL repository stopped")

    async def health_check(self) -> bool:
        try:
            async with self._connection("health_check") as conn:
                await conn.fetchval("SELECT 1")
            return True
        except SourceOfRecordError:
            return False

    @staticmethod
    async def _init_connection(conn: asyncpg.Connection):
        await conn.set_type_codec("jsonb", encoder=json.dumps, decoder=json.loads, schema="pg_catalog")

    @asynccontextmanager
    async def _connection(self, operation: str):
        if self.pool is None:
            raise SourceOfRecordError(operation, details={"error": "repository not started"})
        try:
            async with self.pool.acquire() as conn:
                yield conn
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            self.logger.error("Source of record failure", operation=operation, error=str(e))
            raise SourceOfRecordError(operation, details={"error": str(e)}) from e

    # Orders

    async def list_orders(
        self, user_id: str, limit: int = 10, offset: int = 0, status: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        query = "SELECT * FROM orders WHERE user_id = $1"
        args: List[Any] = [user_id]
        if status:
            args.append(status)
            query += f" AND status = ${len(args)}"
        query += f" ORDER BY created_at DESC LIMIT ${len(args) + 1} OFFSET ${len(args) + 2}"
        args.extend([limit, offset])
        async with self._connection("list_orders") as conn:
            return _rows(await conn.fetch(query, *args))

    async def get_order(self, order_id: str, user_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Fetch one order; scoped to ``user_id`` when given."""
        order_uuid = _uuid(order_id)
        if order_uuid is None:
            return None
        async with self._connection("get_order") as conn:
            if user_id is None:
                return _row(await conn.fetchrow("SELECT * FROM orders WHERE id = $1", order_uuid))
            return _row(await conn.fetchrow(
                "SELECT * FROM orders WHERE id = $1 AND user_id = $2", order_uuid, user_id
            ))

    async def create_order(self, order: Dict[str, Any]) -> Dict[str, Any]:
        columns = [column for column in ORDER_COLUMNS if column in order]
        placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
        async with self._connection("create_order") as conn:
            row = await conn.fetchrow(
                f"INSERT INTO orders ({', '.join(columns)}) VALUES ({placeholders}) RETURNING *",
                *[_param(column, order[column]) for column in columns],
            )
        return _row(row)

    async def update_order(self, order_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        columns = [column for column in fields if column in ORDER_COLUMNS]
        if not columns:
            return await self.get_order(order_id)
        assignments = ", ".join(f"{column} = ${i}" for i, column in enumerate(columns, start=2))
        async with self._connection("update_order") as conn:
            row = await conn.fetchrow(
                f"UPDATE orders SET {assignments}, updated_at = NOW() WHERE id = $1 RETURNING *",
                uuid.UUID(str(order_id)),
                *[fields[column] for column in columns],
            )
        return _row(row)

    # Payments

    async def list_payments(self, order_id: str) -> List[Dict[str, Any]]:
        async with self._connection("list_payments") as conn:
            return _rows(await conn.fetch(
                "SELECT * FROM payments WHERE order_id = $1 ORDER BY created_at DESC",
                uuid.UUID(str(order_id)),
            ))

    async def create_payment(self, payment: Dict[str, Any]) -> Dict[str, Any]:
        async with self._connection("create_payment") as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO payments (
                    order_id, user_id, payment_reference, payment_method, gateway_provider,
                    amount, currency, gateway_response, status
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                RETURNING *
                """,
                uuid.UUID(str(payment["order_id"])), payment["user_id"], payment["payment_reference"],
                payment["payment_method"], payment["gateway_provider"], _param("amount", payment["amount"]),
                payment["currency"], payment["gateway_response"], payment["status"],
            )
        return _row(row)

    async def delete_payment(self, payment_id: str) -> None:
        async with self._connection("delete_payment") as conn:
            await conn.execute("DELETE FROM payments WHERE id = $1", uuid.UUID(str(payment_id)))

    # Addresses

    async def list_addresses(self, user_id: str) -> List[Dict[str, Any]]:
        async with self._connection("list_addresses") as conn:
            return _rows(await conn.fetch(
                """
                SELECT * FROM user_addresses
                WHERE user_id = $1 AND is_active
                ORDER BY is_default DESC, created_at DESC
                """,
                user_id,
            ))

    async def get_address(self, address_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        address_uuid = _uuid(address_id)
        if address_uuid is None:
            return None
        async with self._connection("get_address") as conn:
            return _row(await conn.fetchrow(
                "SELECT * FROM user_addresses WHERE id = $1 AND user_id = $2 AND is_active",
                address_uuid, user_id,
            ))

    async def create_address(self, user_id: str, address: Dict[str, Any]) -> Dict[str, Any]:
        columns = [column for column in ADDRESS_COLUMNS if column in address]
        placeholders = ", ".join(f"${i}" for i in range(2, len(columns) + 2))
        async with self._connection("create_address") as conn:
            async with conn.transaction():
                if address.get("is_default"):
                    await conn.execute(
                        "UPDATE user_addresses SET is_default = FALSE WHERE user_id = $1 AND is_default",
                        user_id,
                    )
                row = await conn.fetchrow(
                    f"INSERT INTO user_addresses (user_id, {', '.join(columns)}) "
                    f"VALUES ($1, {placeholders}) RETURNING *",
                    user_id, *[address[column] for column in columns],
                )
        return _row(row)

    async def update_address(
        self, address_id: str, user_id: str, fields: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        columns = [column for column in fields if column in ADDRESS_COLUMNS]
        if not columns:
            return await self.get_address(address_id, user_id)
        assignments = ", ".join(f"{column} = ${i}" for i, column in enumerate(columns, start=3))
        async with self._connection("update_address") as conn:
            async with conn.transaction():
                if fields.get("is_default"):
                    await conn.execute(
                        "UPDATE user_addresses SET is_default = FALSE WHERE user_id = $1 AND is_default",
                        user_id,
                    )
                row = await conn.fetchrow(
                    f"UPDATE user_addresses SET {assignments}, updated_at = NOW() "
                    f"WHERE id = $1 AND user_id = $2 AND is_active RETURNING *",
                    uuid.UUID(str(address_id)), user_id, *[fields[column] for column in columns],
                )
        return _row(row)

    async def deactivate_address(self, address_id: str, user_id: str) -> bool:
        """Soft-delete; promotes the newest remaining address to default when needed."""
        address_uuid = _uuid(address_id)
        if address_uuid is None:
            return False
        async with self._connection("deactivate_address") as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    """
                    UPDATE user_addresses SET is_active = FALSE, is_default = FALSE, updated_at = NOW()
                    WHERE id = $1 AND user_id = $2 AND is_active
                    RETURNING id
                    """,
                    address_uuid, user_id,
                )
                if row is None:
                    return False
                await conn.execute(
                    """
                    UPDATE user_addresses SET is_default = TRUE
                    WHERE id = (
                        SELECT id FROM user_addresses WHERE user_id = $1 AND is_active
                        ORDER BY created_at DESC LIMIT 1
                    )
                    AND NOT EXISTS (
                        SELECT 1 FROM user_addresses WHERE user_id = $1 AND is_active AND is_default
                    )
                    """,
                    user_id,
                )
        return True

    # Wishlist and cart

    async def get_collection(self, user_id: str, kind: str) -> Optional[List[Dict[str, Any]]]:
        async with self._connection(f"get_{kind}") as conn:
            items = await conn.fetchval(
                "SELECT items FROM user_collections WHERE user_id = $1 AND kind = $2", user_id, kind
            )
        return items

    async def save_collection(self, user_id: str, kind: str, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        async with self._connection(f"save_{kind}") as conn:
            return await conn.fetchval(
                """
                INSERT INTO user_collections (user_id, kind, items) VALUES ($1, $2, $3)
                ON CONFLICT (user_id, kind) DO UPDATE SET items = EXCLUDED.items, updated_at = NOW()
                RETURNING items
                """,
                user_id, kind, items,
            )

    async def delete_collection(self, user_id: str, kind: str) -> None:
        async with self._connection(f"delete_{kind}") as conn:
            await conn.execute("DELETE FROM user_collections WHERE user_id = $1 AND kind = $2", user_id, kind)

    # Ratings and catalog

    async def list_ratings(self, product_id: Optional[str] = None) -> List[Dict[str, Any]]:
        async with self._connection("list_ratings") as conn:
            if product_id is None:
                return _rows(await conn.fetch("SELECT * FROM ratings ORDER BY created_at DESC"))
            return _rows(await conn.fetch(
                "SELECT * FROM ratings WHERE product_id = $1 ORDER BY created_at DESC", product_id
            ))

    async def create_rating(self, rating: Dict[str, Any]) -> Dict[str, Any]:
        async with self._connection("create_rating") as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO ratings (user_id, product_id, rating, comment, images)
                VALUES ($1, $2, $3, $4, $5) RETURNING *
                """,
                rating["user_id"], rating["product_id"], rating["rating"],
                rating.get("comment"), rating.get("images", []),
            )
        return _row(row)

    async def list_sizes(self) -> List[Dict[str, Any]]:
        async with self._connection("list_sizes") as conn:
            return _rows(await conn.fetch(
                "SELECT id, slug, name, display_order, age_slug FROM sizes ORDER BY display_order, name"
            ))
