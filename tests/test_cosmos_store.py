"""
Tests for the Azure Cosmos DB store adapter.

The SDK is replaced by mocks; see test_cosmos_integration.py for tests
against a live account.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from azure.core.exceptions import ServiceRequestError
from azure.cosmos.exceptions import (
    CosmosHttpResponseError,
    CosmosResourceExistsError,
    CosmosResourceNotFoundError,
)
from models import Widget

from cosmos_repository import (
    AuthenticationError,
    CosmosAuthMethod,
    CosmosSettings,
    CosmosStore,
    Field,
    ItemConflictError,
    ItemNotFoundError,
    Repository,
    StoreConnectionError,
    StoreError,
)
from cosmos_repository.paging import collect_all, collect_page
from cosmos_repository.stores.cosmos import CosmosContainer

ENDPOINT = "https://example.documents.azure.com:443/"


class FakePage:
    def __init__(self, items):
        self._items = items

    def __aiter__(self):
        return self._gen()

    async def _gen(self):
        for item in self._items:
            yield item


class FakePageIterator:
    """Stands in for the SDK's AsyncPageIterator.

    Each page fetch reports its own charge to the query's response hook.
    """

    def __init__(self, pages, tokens, charges, response_hook, start_token=None):
        self._pages = list(pages)
        self._tokens = list(tokens)
        self._charges = list(charges)
        self._response_hook = response_hook
        self.start_token = start_token
        self.continuation_token = start_token
        self._index = 0

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self._index >= len(self._pages):
            raise StopAsyncIteration
        items = self._pages[self._index]
        if self._response_hook:
            charge = self._charges[self._index]
            self._response_hook({"x-ms-request-charge": str(charge)}, {"Documents": items})
        self.continuation_token = self._tokens[self._index]
        self._index += 1
        return FakePage(items)


class FakeItemPaged:
    def __init__(self, pages, tokens, charges=None):
        self._pages = pages
        self._tokens = tokens
        self._charges = charges if charges is not None else [1.0] * len(pages)
        self.response_hook = None
        self.page_iterator = None

    def by_page(self, continuation_token=None):
        self.page_iterator = FakePageIterator(
            self._pages, self._tokens, self._charges, self.response_hook, continuation_token
        )
        return self.page_iterator


def serve(proxy, *results):
    """Make proxy.query_items hand out results in order, wiring each query's hook."""
    pending = list(results)

    def query_items(**kwargs):
        result = pending.pop(0)
        result.response_hook = kwargs.get("response_hook")
        return result

    proxy.query_items = MagicMock(side_effect=query_items)


class FakeValues:
    """Async iterable of scalar query results."""

    def __init__(self, values):
        self._values = values

    def __aiter__(self):
        return self._gen()

    async def _gen(self):
        for value in self._values:
            yield value


@pytest.fixture
def proxy():
    proxy = MagicMock()
    proxy.id = "catalog"
    return proxy


@pytest.fixture
def container(proxy):
    return CosmosContainer(proxy, ENDPOINT)


@pytest.fixture
def settings():
    return CosmosSettings(
        endpoint=ENDPOINT,
        database_name="db",
        auth_method=CosmosAuthMethod.KEY,
        key="secret",
    )


def http_error(status_code):
    return CosmosHttpResponseError(status_code=status_code, message=f"status {status_code}")


class TestItemOperations:
    @pytest.mark.asyncio
    async def test_read_item(self, container, proxy):
        proxy.read_item = AsyncMock(return_value={"id": "a"})

        doc = await container.read_item("a", "pk")

        assert doc == {"id": "a"}
        proxy.read_item.assert_awaited_once_with(item="a", partition_key="pk")

    @pytest.mark.asyncio
    async def test_read_not_found(self, container, proxy):
        proxy.read_item = AsyncMock(
            side_effect=CosmosResourceNotFoundError(status_code=404, message="missing")
        )

        with pytest.raises(ItemNotFoundError) as exc_info:
            await container.read_item("a", "pk")

        assert exc_info.value.item_id == "a"
        assert exc_info.value.partition_key == "pk"
        assert exc_info.value.container == "catalog"

    @pytest.mark.asyncio
    async def test_create_conflict(self, container, proxy):
        proxy.create_item = AsyncMock(
            side_effect=CosmosResourceExistsError(status_code=409, message="exists")
        )

        with pytest.raises(ItemConflictError):
            await container.create_item({"id": "a"}, "a")

    @pytest.mark.asyncio
    async def test_create_passes_body(self, container, proxy):
        proxy.create_item = AsyncMock(return_value={"id": "a", "_etag": "e"})

        created = await container.create_item({"id": "a"}, "a")

        assert created["_etag"] == "e"
        proxy.create_item.assert_awaited_once_with(body={"id": "a"})

    @pytest.mark.asyncio
    async def test_upsert_passes_body(self, container, proxy):
        proxy.upsert_item = AsyncMock(return_value={"id": "a"})

        await container.upsert_item({"id": "a"}, "a")

        proxy.upsert_item.assert_awaited_once_with(body={"id": "a"})

    @pytest.mark.asyncio
    async def test_delete(self, container, proxy):
        proxy.delete_item = AsyncMock(return_value=None)

        await container.delete_item("a", "pk")

        proxy.delete_item.assert_awaited_once_with(item="a", partition_key="pk")

    @pytest.mark.asyncio
    async def test_throttling_is_store_error(self, container, proxy):
        proxy.upsert_item = AsyncMock(side_effect=http_error(429))

        with pytest.raises(StoreError) as exc_info:
            await container.upsert_item({"id": "a"}, "a")

        assert exc_info.value.status_code == 429
        assert exc_info.value.operation == "upsert_item"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [401, 403])
    async def test_auth_failures(self, container, proxy, status_code):
        proxy.read_item = AsyncMock(side_effect=http_error(status_code))

        with pytest.raises(AuthenticationError) as exc_info:
            await container.read_item("a", "a")

        assert isinstance(exc_info.value, StoreError)
        assert exc_info.value.status_code == status_code
        assert exc_info.value.operation == "read_item"

    @pytest.mark.asyncio
    async def test_transport_failure(self, container, proxy):
        proxy.read_item = AsyncMock(side_effect=ServiceRequestError("connection refused"))

        with pytest.raises(StoreConnectionError) as exc_info:
            await container.read_item("a", "a")

        assert isinstance(exc_info.value, StoreError)
        assert exc_info.value.endpoint == ENDPOINT
        assert exc_info.value.operation == "read_item"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation", ["create_item", "upsert_item"])
    async def test_missing_container_on_write_is_store_error(self, container, proxy, operation):
        setattr(
            proxy,
            operation,
            AsyncMock(side_effect=CosmosResourceNotFoundError(status_code=404, message="gone")),
        )

        with pytest.raises(StoreError) as exc_info:
            await getattr(container, operation)({"id": "a"}, "a")

        assert not isinstance(exc_info.value, ItemNotFoundError)
        assert exc_info.value.status_code == 404
        assert exc_info.value.operation == operation

    @pytest.mark.asyncio
    async def test_upsert_conflict_is_store_error(self, container, proxy):
        proxy.upsert_item = AsyncMock(
            side_effect=CosmosResourceExistsError(status_code=409, message="exists")
        )

        with pytest.raises(StoreError) as exc_info:
            await container.upsert_item({"id": "a"}, "a")

        assert not isinstance(exc_info.value, ItemConflictError)


class TestQueries:
    @pytest.mark.asyncio
    async def test_query_renders_predicate(self, container, proxy):
        proxy.query_items = MagicMock(return_value=FakeItemPaged([[{"id": "a"}]], [None]))

        items = await collect_all(container.query_items(Field("price") > 10))

        assert items == [{"id": "a"}]
        kwargs = proxy.query_items.call_args.kwargs
        assert kwargs["query"] == 'SELECT * FROM c WHERE c["price"] > @p0'
        assert kwargs["parameters"] == [{"name": "@p0", "value": 10}]

    @pytest.mark.asyncio
    async def test_page_charge_and_token(self, container, proxy):
        paged = FakeItemPaged(
            [[{"id": "a"}, {"id": "b"}], [{"id": "c"}, {"id": "d"}], [{"id": "e"}]],
            ["t1", "t2", None],
            charges=[2.0, 3.0, 4.0],
        )
        serve(proxy, paged)

        page = await collect_page(
            container.query_items(None, max_item_count=2, continuation_token="t0"), 3
        )

        assert [d["id"] for d in page.items] == ["a", "b", "c"]
        assert page.request_charge == 5.0
        assert page.continuation_token == "t2"
        assert paged.page_iterator.start_token == "t0"
        assert proxy.query_items.call_args.kwargs["max_item_count"] == 2

    @pytest.mark.asyncio
    async def test_cursor_ends_when_token_exhausted(self, container, proxy):
        proxy.query_items = MagicMock(return_value=FakeItemPaged([[{"id": "a"}]], [None]))

        cursor = container.query_items(None)
        batch = await cursor.fetch_next()

        assert batch.continuation_token is None
        assert not cursor.has_more_results

    @pytest.mark.asyncio
    async def test_empty_result(self, container, proxy):
        proxy.query_items = MagicMock(return_value=FakeItemPaged([], []))

        assert await collect_all(container.query_items(None)) == []

    @pytest.mark.asyncio
    async def test_count(self, container, proxy):
        proxy.query_items = MagicMock(return_value=FakeValues([3]))

        assert await container.count_items(Field("price") > 1) == 3
        assert proxy.query_items.call_args.kwargs["query"].startswith("SELECT VALUE COUNT(1) FROM c")

    @pytest.mark.asyncio
    async def test_missing_container_on_query(self, container, proxy):
        proxy.query_items = MagicMock(
            side_effect=CosmosResourceNotFoundError(status_code=404, message="no container"),
        )

        with pytest.raises(StoreError):
            await container.count_items(None)

    @pytest.mark.asyncio
    async def test_interleaved_cursors_keep_their_own_charges(self, container, proxy):
        # the client-wide header only ever holds the last response of any request
        proxy.client_connection.last_response_headers = {"x-ms-request-charge": "99"}
        serve(
            proxy,
            FakeItemPaged([[{"id": "a1"}], [{"id": "a2"}]], ["ta", None], charges=[1.0, 2.0]),
            FakeItemPaged([[{"id": "b1"}], [{"id": "b2"}]], ["tb", None], charges=[10.0, 20.0]),
        )
        first = container.query_items(None)
        second = container.query_items(None)

        a1 = await first.fetch_next()
        b1 = await second.fetch_next()
        a2 = await first.fetch_next()
        b2 = await second.fetch_next()

        assert [a1.request_charge, a2.request_charge] == [1.0, 2.0]
        assert [b1.request_charge, b2.request_charge] == [10.0, 20.0]
        assert [d["id"] for d in a1.items + a2.items] == ["a1", "a2"]
        assert [d["id"] for d in b1.items + b2.items] == ["b1", "b2"]

    @pytest.mark.asyncio
    async def test_query_registers_response_hook(self, container, proxy):
        serve(proxy, FakeItemPaged([[{"id": "a"}]], [None]))

        await collect_all(container.query_items(None))

        assert callable(proxy.query_items.call_args.kwargs["response_hook"])


class TestCosmosStore:
    def test_get_container_requires_initialize(self, settings):
        with pytest.raises(StoreError):
            CosmosStore(settings, client=MagicMock()).get_container("catalog")

    @pytest.mark.asyncio
    async def test_lifecycle_with_injected_client(self, settings):
        client = MagicMock()
        client.close = AsyncMock()
        database = MagicMock()
        database.read = AsyncMock(return_value={"id": "db"})
        client.get_database_client.return_value = database
        database.get_container_client.return_value = MagicMock(id="catalog")

        async with CosmosStore(settings, client=client) as store:
            container = store.get_container("catalog")
            assert container.name == "catalog"
            assert store.get_container("catalog") is container

        client.get_database_client.assert_called_once_with("db")
        client.close.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_initialize_auth_failure(self, settings):
        client = MagicMock()
        client.get_database_client.return_value.read = AsyncMock(side_effect=http_error(401))

        with pytest.raises(AuthenticationError):
            await CosmosStore(settings, client=client).initialize()

    @pytest.mark.asyncio
    async def test_initialize_connection_failure(self, settings):
        client = MagicMock()
        client.get_database_client.return_value.read = AsyncMock(side_effect=OSError("down"))

        with pytest.raises(StoreConnectionError):
            await CosmosStore(settings, client=client).initialize()

    @pytest.mark.asyncio
    async def test_failed_initialize_closes_owned_client_and_credential(self):
        settings = CosmosSettings(endpoint=ENDPOINT, database_name="db")
        credential = MagicMock()
        credential.close = AsyncMock()
        client = MagicMock()
        client.close = AsyncMock()
        client.get_database_client.return_value.read = AsyncMock(side_effect=http_error(403))

        with (
            patch("cosmos_repository.stores.cosmos.get_credential", return_value=credential),
            patch("cosmos_repository.stores.cosmos.CosmosClient", return_value=client),
        ):
            store = CosmosStore(settings)
            with pytest.raises(AuthenticationError):
                async with store:
                    pass

        client.close.assert_awaited_once()
        credential.close.assert_awaited_once()
        with pytest.raises(StoreError):
            store.get_container("catalog")

    @pytest.mark.asyncio
    async def test_failed_initialize_leaves_injected_client_open(self, settings):
        client = MagicMock()
        client.close = AsyncMock()
        client.get_database_client.return_value.read = AsyncMock(side_effect=OSError("down"))

        with pytest.raises(StoreConnectionError):
            await CosmosStore(settings, client=client).initialize()

        client.close.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ensure_container(self, settings):
        client = MagicMock()
        database = client.get_database_client.return_value
        database.read = AsyncMock()
        database.create_container_if_not_exists = AsyncMock(return_value=MagicMock(id="orders"))
        store = CosmosStore(settings, client=client)
        await store.initialize()

        container = await store.ensure_container("orders", "/partitionKey")

        assert container.name == "orders"
        assert store.get_container("orders") is container
        call = database.create_container_if_not_exists.call_args
        assert call.kwargs["id"] == "orders"


class TestRepositoryOverCosmos:
    @pytest.mark.asyncio
    async def test_get_defaults_partition_key_to_id(self, settings):
        client = MagicMock()
        database = client.get_database_client.return_value
        database.read = AsyncMock()
        proxy = MagicMock(id="catalog")
        proxy.read_item = AsyncMock(return_value={"id": "a", "type": "Widget", "price": 3})
        database.get_container_client.return_value = proxy
        store = CosmosStore(settings, client=client)
        await store.initialize()

        widget = await Repository(store, Widget).get("a", "catalog")

        assert widget.price == 3
        proxy.read_item.assert_awaited_once_with(item="a", partition_key="a")

    @pytest.mark.asyncio
    async def test_find_sends_discriminator(self, settings, proxy):
        client = MagicMock()
        database = client.get_database_client.return_value
        database.read = AsyncMock()
        proxy.query_items = MagicMock(return_value=FakeItemPaged([[]], [None]))
        database.get_container_client.return_value = proxy
        store = CosmosStore(settings, client=client)
        await store.initialize()

        await Repository(store, Widget).find("catalog", Field("price") > 10)

        kwargs = proxy.query_items.call_args.kwargs
        assert kwargs["query"] == (
            'SELECT * FROM c WHERE (c["price"] > @p0 AND '
            '((NOT IS_DEFINED(c["type"])) OR c["type"] = @p1))'
        )
        assert kwargs["parameters"][1] == {"name": "@p1", "value": "Widget"}

    @pytest.mark.asyncio
    async def test_create_in_missing_container_is_store_error(self, settings, proxy):
        client = MagicMock()
        database = client.get_database_client.return_value
        database.read = AsyncMock()
        proxy.create_item = AsyncMock(
            side_effect=CosmosResourceNotFoundError(status_code=404, message="no container")
        )
        database.get_container_client.return_value = proxy
        store = CosmosStore(settings, client=client)
        await store.initialize()

        with pytest.raises(StoreError) as exc_info:
            await Repository(store, Widget).create(Widget(id="a"), "nope")

        assert not isinstance(exc_info.value, ItemNotFoundError)
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_forbidden_read_is_caught_as_store_error(self, settings, proxy):
        client = MagicMock()
        database = client.get_database_client.return_value
        database.read = AsyncMock()
        proxy.read_item = AsyncMock(side_effect=http_error(403))
        database.get_container_client.return_value = proxy
        store = CosmosStore(settings, client=client)
        await store.initialize()

        with pytest.raises(StoreError) as exc_info:
            await Repository(store, Widget).get("a", "catalog")

        assert isinstance(exc_info.value, AuthenticationError)
