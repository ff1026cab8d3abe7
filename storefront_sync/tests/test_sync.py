"""
Unit tests for the collection sync service.
"""

import asyncio
from copy import deepcopy

import httpx
import pytest

from shared.errors import ServiceError, ValidationError
from shared.test_helpers import storefront_test_environment
from storefront_sync.local_store import LocalCollectionStore, LocalPersistenceError
from storefront_sync.remote import RemoteCollectionClient
from storefront_sync.sync import CART, WISHLIST, CollectionSyncService, Session, SyncState, create_sync_service

SESSION = Session(user_id="user-1", token="tok")


class FakeRemote:
    """Records pushes and serves a configurable remote collection."""

    def __init__(self, items=None):
        self.items = items or []
        self.pushes = []
        self.fetches = 0
        self.fail_pushes = 0
        self.fail_fetches = 0
        self.closed = False

    async def fetch(self, token):
        self.fetches += 1
        if self.fail_fetches:
            self.fail_fetches -= 1
            raise ServiceError("Failed to fetch cart")
        return deepcopy(self.items)

    async def push(self, token, items):
        await asyncio.sleep(0)
        if self.fail_pushes:
            self.fail_pushes -= 1
            raise ServiceError("Failed to push cart")
        self.pushes.append(deepcopy(items))
        self.items = deepcopy(items)
        return deepcopy(items)

    async def close(self):
        self.closed = True


class SlowFirstPushRemote(FakeRemote):
    """The first push blocks until ``release`` is set."""

    def __init__(self, items=None):
        super().__init__(items)
        self.first_started = asyncio.Event()
        self.release = asyncio.Event()

    async def push(self, token, items):
        if not self.first_started.is_set():
            self.first_started.set()
            await self.release.wait()
        return await super().push(token, items)


def make_service(tmp_path, remote, kind=CART, local=None, debounce=0.05):
    store = LocalCollectionStore(tmp_path, kind)
    if local is not None:
        store.save(local)
    return CollectionSyncService(kind, store, remote, debounce_seconds=debounce)


class TestInitialization:

    @pytest.mark.asyncio
    async def test_signed_out_uses_local_only(self, tmp_path):
        remote = FakeRemote([{"id": "x", "quantity": 1}])
        service = make_service(tmp_path, remote, local=[{"id": "a", "quantity": 1}])

        items = await service.initialize()

        assert items == [{"id": "a", "quantity": 1}]
        assert service.state is SyncState.READY
        assert remote.fetches == 0

    @pytest.mark.asyncio
    async def test_identical_reload_does_not_push(self, tmp_path):
        remote = FakeRemote([{"id": "a", "quantity": 2}])
        service = make_service(tmp_path, remote, local=[{"id": "a", "quantity": 2}])

        items = await service.initialize(SESSION)

        assert items == [{"id": "a", "quantity": 2}]
        assert remote.pushes == []

    @pytest.mark.asyncio
    async def test_divergent_devices_are_merged_saved_and_pushed(self, tmp_path):
        remote = FakeRemote([{"id": "b", "quantity": 3}])
        service = make_service(tmp_path, remote, local=[{"id": "a", "quantity": 1}])

        items = await service.initialize(SESSION)

        assert items == [{"id": "b", "quantity": 3}, {"id": "a", "quantity": 1}]
        assert service.store.load() == items
        assert remote.pushes == [items]

    @pytest.mark.asyncio
    async def test_remote_only_items_are_adopted_without_push(self, tmp_path):
        remote = FakeRemote([{"id": "b", "quantity": 3}])
        service = make_service(tmp_path, remote, local=[])

        items = await service.initialize(SESSION)

        assert items == [{"id": "b", "quantity": 3}]
        assert service.store.load() == items
        assert remote.pushes == []

    @pytest.mark.asyncio
    async def test_initialize_twice_is_rejected(self, tmp_path):
        service = make_service(tmp_path, FakeRemote())
        await service.initialize()
        with pytest.raises(ValidationError):
            await service.initialize()

    @pytest.mark.asyncio
    async def test_mutation_before_initialize_is_rejected(self, tmp_path):
        service = make_service(tmp_path, FakeRemote())
        with pytest.raises(ValidationError):
            service.add_item({"id": "a"})

    @pytest.mark.asyncio
    async def test_malformed_remote_response_keeps_local_items(self, tmp_path):
        http_client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, text="<html>oops</html>"))
        )
        remote = RemoteCollectionClient("https://shop.example", CART, client=http_client)
        service = make_service(tmp_path, remote, local=[{"id": "a", "quantity": 1}])

        items = await service.initialize(SESSION)

        assert items == [{"id": "a", "quantity": 1}]
        assert service.state is SyncState.READY
        await http_client.aclose()


class TestDebouncedPush:

    @pytest.mark.asyncio
    async def test_burst_of_mutations_pushes_once_with_final_state(self, tmp_path):
        remote = FakeRemote()
        service = make_service(tmp_path, remote, debounce=0.1)
        await service.initialize(SESSION)

        service.add_item({"id": "a", "quantity": 1})
        await asyncio.sleep(0.01)
        service.add_item({"id": "b"})
        await asyncio.sleep(0.01)
        service.update_quantity("a", 3)
        await asyncio.sleep(0.01)
        service.add_item({"id": "c", "quantity": 2})
        await asyncio.sleep(0.01)
        service.remove_item("b")

        assert remote.pushes == []
        await asyncio.sleep(0.25)
        await service.flush()

        assert remote.pushes == [[{"id": "a", "quantity": 3}, {"id": "c", "quantity": 2}]]

    @pytest.mark.asyncio
    async def test_every_mutation_is_persisted_immediately(self, tmp_path):
        service = make_service(tmp_path, FakeRemote())
        await service.initialize(SESSION)

        service.add_item({"id": "a"})
        assert service.store.load() == [{"id": "a", "quantity": 1}]

        service.add_item({"id": "a", "quantity": 2})
        assert service.store.load() == [{"id": "a", "quantity": 3}]

        await service.close()

    @pytest.mark.asyncio
    async def test_no_push_when_signed_out(self, tmp_path):
        remote = FakeRemote()
        service = make_service(tmp_path, remote, debounce=0.01)
        await service.initialize()

        service.add_item({"id": "a"})
        assert not service.push_pending
        await asyncio.sleep(0.05)

        assert remote.pushes == []

    @pytest.mark.asyncio
    async def test_unchanged_snapshot_is_not_pushed_again(self, tmp_path):
        remote = FakeRemote()
        service = make_service(tmp_path, remote)
        await service.initialize(SESSION)

        service.add_item({"id": "a"})
        await service.flush()
        service.replace([{"id": "a", "quantity": 1}])
        await service.flush()

        assert len(remote.pushes) == 1

    @pytest.mark.asyncio
    async def test_slow_push_is_not_overtaken_by_a_later_one(self, tmp_path):
        remote = SlowFirstPushRemote()
        service = make_service(tmp_path, remote, debounce=0.01)
        await service.initialize(SESSION)

        service.add_item({"id": "a"})
        await remote.first_started.wait()
        service.add_item({"id": "b"})
        await asyncio.sleep(0.05)
        service.remove_item("b")
        await asyncio.sleep(0.05)

        remote.release.set()
        await asyncio.sleep(0.05)
        await service.flush()

        assert remote.items == service.items == [{"id": "a", "quantity": 1}]
        assert remote.pushes[0] == [{"id": "a", "quantity": 1}]

    @pytest.mark.asyncio
    async def test_failed_push_is_retried_on_next_change(self, tmp_path):
        remote = FakeRemote()
        remote.fail_pushes = 1
        service = make_service(tmp_path, remote)
        await service.initialize(SESSION)

        service.add_item({"id": "a"})
        await service.flush()
        assert remote.pushes == []

        service.add_item({"id": "b"})
        await service.flush()
        assert remote.pushes == [[{"id": "a", "quantity": 1}, {"id": "b", "quantity": 1}]]

    @pytest.mark.asyncio
    async def test_failed_reconcile_is_retried_before_pushing(self, tmp_path):
        remote = FakeRemote([{"id": "r", "quantity": 1}])
        remote.fail_fetches = 1
        service = make_service(tmp_path, remote, local=[{"id": "a", "quantity": 1}])

        assert await service.initialize(SESSION) == [{"id": "a", "quantity": 1}]
        assert remote.pushes == []

        service.add_item({"id": "b"})
        await service.flush()

        assert remote.fetches == 2
        assert remote.pushes == [[
            {"id": "r", "quantity": 1}, {"id": "a", "quantity": 1}, {"id": "b", "quantity": 1}
        ]]


class TestSessionLifecycle:

    @pytest.mark.asyncio
    async def test_sign_in_merges_local_changes(self, tmp_path):
        remote = FakeRemote([{"id": "r"}])
        service = make_service(tmp_path, remote, kind=WISHLIST)
        await service.initialize()
        service.add_item({"id": "w"})

        items = await service.sign_in(SESSION)

        assert items == [{"id": "r"}, {"id": "w"}]
        assert remote.pushes == [items]

    @pytest.mark.asyncio
    async def test_sign_out_keeps_local_and_cancels_push(self, tmp_path):
        remote = FakeRemote()
        service = make_service(tmp_path, remote)
        await service.initialize(SESSION)
        service.add_item({"id": "a"})

        service.sign_out()
        await asyncio.sleep(0.1)

        assert remote.pushes == []
        assert service.items == [{"id": "a", "quantity": 1}]
        assert service.store.load() == service.items

    @pytest.mark.asyncio
    async def test_close_cancels_pending_push(self, tmp_path):
        remote = FakeRemote()
        service = make_service(tmp_path, remote)
        await service.initialize(SESSION)
        service.add_item({"id": "a"})

        await service.close()
        await asyncio.sleep(0.1)

        assert remote.pushes == []
        assert remote.closed
        assert service.state is SyncState.CLOSED


class TestMutations:

    @pytest.fixture
    async def cart(self, tmp_path):
        service = make_service(tmp_path, FakeRemote(), local=[{"id": "a", "quantity": 2}])
        await service.initialize()
        return service

    @pytest.mark.asyncio
    async def test_update_quantity_to_zero_removes(self, cart):
        assert cart.update_quantity("a", 0) == []

    @pytest.mark.asyncio
    async def test_clear(self, cart):
        assert cart.clear() == []
        assert cart.store.load() == []

    @pytest.mark.asyncio
    async def test_wishlist_has_no_quantities(self, tmp_path):
        service = make_service(tmp_path, FakeRemote(), kind=WISHLIST)
        await service.initialize()

        assert service.add_item({"id": "a"}) == [{"id": "a"}]
        assert service.add_item({"id": "a"}) == [{"id": "a"}]
        with pytest.raises(ValidationError):
            service.update_quantity("a", 2)

    @pytest.mark.asyncio
    async def test_item_requires_id(self, cart):
        with pytest.raises(ValidationError):
            cart.add_item({"name": "nameless"})

    @pytest.mark.asyncio
    async def test_local_save_failure_raises_and_keeps_memory(self, cart, monkeypatch):
        def broken_save(items):
            raise LocalPersistenceError(cart.store.path, OSError("disk full"))

        monkeypatch.setattr(cart.store, "save", broken_save)

        with pytest.raises(LocalPersistenceError):
            cart.add_item({"id": "b"})
        assert cart.items == [{"id": "a", "quantity": 2}]

    def test_unknown_kind(self, tmp_path):
        with pytest.raises(ValueError):
            CollectionSyncService("orders", LocalCollectionStore(tmp_path, "orders"), FakeRemote())


class TestFactory:

    @pytest.mark.asyncio
    async def test_builds_from_environment(self, tmp_path, monkeypatch):
        for name, value in storefront_test_environment.get_mock_config().items():
            monkeypatch.setenv(name, value)
        monkeypatch.setenv("STOREFRONT_SYNC_STATE_DIR", str(tmp_path))

        service = create_sync_service(WISHLIST)

        assert service.store.path == tmp_path / "wishlist.json"
        assert service.remote.url == "http://storefront.test/wishlist"
        assert service._timer.delay == 0.05
        await service.close()
