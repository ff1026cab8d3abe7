"""
Local-first sync of a cart or wishlist with the storefront service.

The local copy is the working state and is written on every change. While a
session is attached the service reconciles with the remote copy once, then
pushes the local state after a quiet period so bursts of edits turn into a
single request.
"""

import asyncio
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import httpx

from shared.config import BaseConfig
from shared.errors import StorefrontException, ValidationError
from shared.logging import get_logger
from shared.retry import RetryError

from .debounce import DebounceTimer
from .local_store import LocalCollectionStore
from .merge import merge_cart, merge_wishlist
from .remote import RemoteCollectionClient

CART = "cart"
WISHLIST = "wishlist"

Item = Dict[str, Any]

_MERGERS: Dict[str, Callable[[List[Item], List[Item]], List[Item]]] = {
    CART: merge_cart,
    WISHLIST: merge_wishlist,
}

REMOTE_ERRORS = (StorefrontException, RetryError, httpx.HTTPError)


class SyncState(str, Enum):
    UNINITIALIZED = "uninitialized"
    RECONCILING = "reconciling"
    READY = "ready"
    CLOSED = "closed"


@dataclass(frozen=True)
class Session:
    user_id: str
    token: str


def _snapshot(items: List[Item]) -> str:
    return json.dumps(items, sort_keys=True, separators=(",", ":"))


class CollectionSyncService:
    """Keeps one collection kind in sync for a single shopper."""

    def __init__(
        self,
        kind: str,
        store: LocalCollectionStore,
        remote: RemoteCollectionClient,
        debounce_seconds: float = 1.0,
    ):
        if kind not in _MERGERS:
            raise ValueError(f"Unknown collection kind: {kind}")
        self.kind = kind
        self.store = store
        self.remote = remote
        self.logger = get_logger(f"storefront_sync.{kind}")

        self.items: List[Item] = []
        self.session: Optional[Session] = None
        self.state = SyncState.UNINITIALIZED

        self._merge = _MERGERS[kind]
        self._timer = DebounceTimer(debounce_seconds, self._push_latest)
        self._reconciled = False
        self._push_lock = asyncio.Lock()
        self._last_pushed: Optional[str] = None

    @property
    def push_pending(self) -> bool:
        return self._timer.pending

    async def initialize(self, session: Optional[Session] = None) -> List[Item]:
        """Load the local copy, then reconcile with the remote one when signed in."""
        if self.state != SyncState.UNINITIALIZED:
            raise ValidationError(f"{self.kind} sync already initialized")

        self.items = self.store.load()
        self.session = session
        if session is not None:
            await self._reconcile()
        self.state = SyncState.READY
        return self.items

    async def sign_in(self, session: Session) -> List[Item]:
        self._require_ready()
        self._timer.cancel()
        self.session = session
        self._last_pushed = None
        await self._reconcile()
        return self.items

    def sign_out(self) -> None:
        """Detach from the remote copy. Local items stay as they are."""
        self._timer.cancel()
        self.session = None
        self._reconciled = False
        self._last_pushed = None
        self.logger.info("Signed out, keeping local collection", items=len(self.items))

    # Mutations

    def add_item(self, item: Item) -> List[Item]:
        if not item.get("id"):
            raise ValidationError("Item id is required")

        item_id = str(item["id"])
        items = [dict(existing) for existing in self.items]
        for existing in items:
            if str(existing["id"]) == item_id:
                if self.kind == CART:
                    existing["quantity"] = int(existing.get("quantity", 1)) + int(item.get("quantity", 1))
                return self._apply(items)

        added = dict(item)
        if self.kind == CART:
            added["quantity"] = int(added.get("quantity", 1))
        items.append(added)
        return self._apply(items)

    def remove_item(self, product_id: str) -> List[Item]:
        return self._apply([item for item in self.items if str(item["id"]) != str(product_id)])

    def update_quantity(self, product_id: str, quantity: int) -> List[Item]:
        """Set a cart line's quantity; zero or less removes the line."""
        if self.kind != CART:
            raise ValidationError("Only cart items carry a quantity")
        if quantity <= 0:
            return self.remove_item(product_id)

        items = []
        for item in self.items:
            item = dict(item)
            if str(item["id"]) == str(product_id):
                item["quantity"] = int(quantity)
            items.append(item)
        return self._apply(items)

    def replace(self, items: List[Item]) -> List[Item]:
        return self._apply([dict(item) for item in items])

    def clear(self) -> List[Item]:
        return self._apply([])

    async def flush(self) -> None:
        """Push a pending change now instead of waiting out the debounce window."""
        await self._timer.flush()

    async def close(self) -> None:
        """Drop any pending push and release the HTTP client."""
        self._timer.cancel()
        await self._timer.wait_idle()
        await self.remote.close()
        self.state = SyncState.CLOSED

    # Internals

    def _require_ready(self) -> None:
        # The merge runs after the fetch returns, so edits made while reconciling are kept.
        if self.state not in (SyncState.READY, SyncState.RECONCILING):
            raise ValidationError(f"{self.kind} sync is {self.state.value}, not ready")

    def _apply(self, items: List[Item]) -> List[Item]:
        self._require_ready()
        self.store.save(items)
        self.items = items
        if self.session is not None:
            self._timer.schedule()
        return self.items

    async def _reconcile(self) -> None:
        self.state = SyncState.RECONCILING
        try:
            await self._merge_remote()
        finally:
            self.state = SyncState.READY

    async def _merge_remote(self) -> None:
        try:
            remote_items = await self.remote.fetch(self.session.token)
        except REMOTE_ERRORS as e:
            self._reconciled = False
            self.logger.warning("Could not fetch remote collection, working locally", error=str(e))
            return

        self._reconciled = True
        self._last_pushed = _snapshot(remote_items)

        merged = self._merge(self.items, remote_items)
        if _snapshot(merged) != _snapshot(self.items):
            self.logger.info("Merged remote collection", local=len(self.items), remote=len(remote_items))
            self.store.save(merged)
            self.items = merged

        # Local-only lines would otherwise not reach the remote copy until the next edit.
        await self._push()

    async def _push_latest(self) -> None:
        if self.session is None:
            return
        if not self._reconciled:
            await self._reconcile()
            return
        await self._push()

    async def _push(self) -> None:
        # One push at a time, each sending the newest items, so a slow request
        # cannot land after a later one and overwrite it.
        async with self._push_lock:
            if self.session is None:
                return
            items = self.items
            snapshot = _snapshot(items)
            if snapshot == self._last_pushed:
                self.logger.debug("Skipping redundant push", items=len(items))
                return

            try:
                await self.remote.push(self.session.token, items)
                self._last_pushed = snapshot
                self.logger.info("Pushed collection", items=len(items))
            except REMOTE_ERRORS as e:
                self.logger.warning("Push failed, will retry on next change", error=str(e))


def create_sync_service(kind: str, config: Optional[BaseConfig] = None) -> CollectionSyncService:
    """Build a sync service from ``STOREFRONT_`` settings."""
    config = config or BaseConfig()
    return CollectionSyncService(
        kind,
        LocalCollectionStore(config.sync_state_dir, kind),
        RemoteCollectionClient(config.storefront_api_url, kind),
        debounce_seconds=config.sync_debounce_seconds,
    )
