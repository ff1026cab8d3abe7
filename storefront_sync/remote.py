"""
HTTP client for the storefront's cart and wishlist endpoints.
"""

from typing import Any, Dict, List, Optional

import httpx

from shared.errors import AuthenticationError, ServiceError
from shared.logging import get_logger
from shared.retry import RetryPolicy, retry_async


class RemoteCollectionClient:
    """Reads and replaces one collection kind (``cart`` or ``wishlist``)."""

    def __init__(
        self,
        base_url: str,
        kind: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.kind = kind
        self.logger = get_logger(f"storefront_sync.remote.{kind}")
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    @property
    def url(self) -> str:
        return f"{self.base_url}/{self.kind}"

    @retry_async((httpx.TransportError,), RetryPolicy(max_attempts=3, base_delay=0.5, max_delay=5.0))
    async def fetch(self, token: str) -> List[Dict[str, Any]]:
        response = await self._client.get(self.url, headers=self._headers(token))
        return self._items(response, "fetch")

    async def push(self, token: str, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Replace the remote collection with ``items``. Not retried here; the sync loop retries."""
        response = await self._client.put(self.url, json={"items": items}, headers=self._headers(token))
        return self._items(response, "push")

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @staticmethod
    def _headers(token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    def _items(self, response: httpx.Response, operation: str) -> List[Dict[str, Any]]:
        if response.status_code == 401:
            raise AuthenticationError("Session rejected by storefront")
        if response.status_code != 200:
            self.logger.error(
                "Storefront request failed",
                operation=operation,
                status_code=response.status_code,
                body=response.text[:200],
            )
            raise ServiceError(
                f"Failed to {operation} {self.kind}",
                details={"status_code": response.status_code},
            )

        try:
            body = response.json()
        except ValueError:
            body = None
        items = body.get("items", []) if isinstance(body, dict) else None
        if not isinstance(items, list):
            self.logger.error("Malformed storefront response", operation=operation, body=response.text[:200])
            raise ServiceError(f"Malformed {self.kind} response", details={"operation": operation})

        # Lines the merge cannot key on are dropped rather than failing the whole sync.
        usable = [item for item in items if isinstance(item, dict) and item.get("id")]
        if len(usable) != len(items):
            self.logger.warning("Dropped malformed items", operation=operation, dropped=len(items) - len(usable))
        return usable
