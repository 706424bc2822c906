"""
Azure Cosmos DB store.

Adapts the async Azure Cosmos SDK to the store collaborator contract:
- Client lifecycle and authentication
- Container access by name
- Predicate queries rendered to parameterized SQL
- Paged cursors reporting request charge and continuation tokens
- SDK errors translated to repository exceptions
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any

from azure.core.exceptions import AzureError, ServiceRequestError
from azure.cosmos import PartitionKey
from azure.cosmos.aio import ContainerProxy, CosmosClient, DatabaseProxy
from azure.cosmos.exceptions import (
    CosmosHttpResponseError,
    CosmosResourceExistsError,
    CosmosResourceNotFoundError,
)

from ..config import CosmosSettings, get_credential
from ..exceptions import (
    AuthenticationError,
    ItemConflictError,
    ItemNotFoundError,
    StoreConnectionError,
    StoreError,
)
from ..paging import FeedBatch, ItemCursor
from ..predicates import Predicate, build_query
from ..protocols import ItemContainer, ItemStore

logger = logging.getLogger(__name__)

REQUEST_CHARGE_HEADER = "x-ms-request-charge"


@contextmanager
def translate_errors(
    operation: str,
    container: str,
    endpoint: str,
    item_id: str | None = None,
    partition_key: str | None = None,
    *,
    not_found_is_item: bool = False,
    conflict_is_item: bool = False,
) -> Iterator[None]:
    """Translate Azure SDK errors raised inside the block.

    Not-found becomes ``ItemNotFoundError`` only for reads and deletes and
    conflict becomes ``ItemConflictError`` only for creates. Anywhere else
    a 404 means the container or database is missing, so both surface as
    ``StoreError``.
    """
    try:
        yield
    except CosmosResourceNotFoundError as e:
        if not_found_is_item and item_id is not None:
            raise ItemNotFoundError(item_id, partition_key, container) from e
        raise StoreError(operation, container, e.status_code, e) from e
    except CosmosResourceExistsError as e:
        if conflict_is_item and item_id is not None:
            raise ItemConflictError(item_id, partition_key, container) from e
        raise StoreError(operation, container, e.status_code, e) from e
    except CosmosHttpResponseError as e:
        if e.status_code in (401, 403):
            raise AuthenticationError(endpoint, str(e), e.status_code, operation) from e
        raise StoreError(operation, container, e.status_code, e) from e
    except ServiceRequestError as e:
        raise StoreConnectionError(endpoint, e, operation) from e
    except AzureError as e:
        raise StoreError(operation, container, cause=e) from e


def _request_charge(headers: Mapping[str, Any] | None) -> float:
    """Read the request charge from one response's headers."""
    try:
        return float((headers or {}).get(REQUEST_CHARGE_HEADER, 0))
    except (TypeError, ValueError):
        return 0.0


class CosmosCursor(ItemCursor):
    """Cursor driving an SDK query page by page.

    The charge of each page is taken from that page's own response
    headers, so cursors sharing one client do not see each other's charges.
    """

    def __init__(
        self,
        container: ContainerProxy,
        endpoint: str,
        query: str,
        parameters: list[dict[str, Any]],
        max_item_count: int | None = None,
        continuation_token: str | None = None,
    ) -> None:
        self._container = container
        self._endpoint = endpoint
        self._query = query
        self._page_charge = 0.0
        query_options: dict[str, Any] = {}
        if max_item_count:
            query_options["max_item_count"] = max_item_count
        self._pages = container.query_items(
            query=query,
            parameters=parameters,
            response_hook=self._on_response,
            **query_options,
        ).by_page(continuation_token)
        self._done = False

    def _on_response(self, headers: Mapping[str, Any], result: Any) -> None:
        self._page_charge += _request_charge(headers)

    @property
    def has_more_results(self) -> bool:
        return not self._done

    async def fetch_next(self) -> FeedBatch:
        self._page_charge = 0.0
        with translate_errors("query_items", self._container.id, self._endpoint):
            try:
                page = await anext(self._pages)
            except StopAsyncIteration:
                self._done = True
                return FeedBatch(request_charge=self._page_charge)
            items = [item async for item in page]

        token = self._pages.continuation_token
        if not token:
            self._done = True
        return FeedBatch(
            items=items,
            request_charge=self._page_charge,
            continuation_token=token,
        )

    async def close(self) -> None:
        self._done = True


class CosmosContainer(ItemContainer):
    """Store container backed by an SDK container proxy.

    The SDK takes the partition key for writes from the document body,
    so the container's partition key path must point at a field the
    documents carry (``/id`` or ``/partitionKey`` for ``Item`` documents).
    """

    def __init__(self, container: ContainerProxy, endpoint: str) -> None:
        self._container = container
        self._endpoint = endpoint

    @property
    def name(self) -> str:
        return self._container.id

    async def read_item(self, item_id: str, partition_key: str) -> dict[str, Any]:
        with translate_errors(
            "read_item", self.name, self._endpoint, item_id, partition_key, not_found_is_item=True
        ):
            return await self._container.read_item(item=item_id, partition_key=partition_key)

    async def create_item(self, body: dict[str, Any], partition_key: str) -> dict[str, Any]:
        item_id = body.get("id", "")
        with translate_errors(
            "create_item", self.name, self._endpoint, item_id, partition_key, conflict_is_item=True
        ):
            return await self._container.create_item(body=body)

    async def upsert_item(self, body: dict[str, Any], partition_key: str) -> dict[str, Any]:
        item_id = body.get("id", "")
        with translate_errors("upsert_item", self.name, self._endpoint, item_id, partition_key):
            return await self._container.upsert_item(body=body)

    async def delete_item(self, item_id: str, partition_key: str) -> None:
        with translate_errors(
            "delete_item", self.name, self._endpoint, item_id, partition_key, not_found_is_item=True
        ):
            await self._container.delete_item(item=item_id, partition_key=partition_key)

    def query_items(
        self,
        predicate: Predicate | None,
        max_item_count: int | None = None,
        continuation_token: str | None = None,
    ) -> CosmosCursor:
        query, parameters = build_query(predicate)
        logger.debug(f"Query on {self.name}: {query}")
        return CosmosCursor(
            self._container,
            self._endpoint,
            query,
            parameters,
            max_item_count=max_item_count,
            continuation_token=continuation_token,
        )

    async def count_items(self, predicate: Predicate | None) -> int:
        query, parameters = build_query(predicate, select="VALUE COUNT(1)")
        total = 0
        with translate_errors("count_items", self.name, self._endpoint):
            async for value in self._container.query_items(query=query, parameters=parameters):
                total += int(value or 0)
        return total


class CosmosStore(ItemStore):
    """Store backed by an Azure Cosmos DB database.

    Use as an async context manager, or call ``initialize`` and ``close``.

    Usage:

        >>> async with CosmosStore(CosmosSettings.from_env()) as store:
        ...     repo = Repository(store, Widget)
    """

    def __init__(self, settings: CosmosSettings, client: CosmosClient | None = None) -> None:
        """Initialize the store.

        Args:
            settings: Connection settings
            client: Pre-built SDK client. When given, the store does not own it
        """
        self.settings = settings
        self._client = client
        self._owns_client = client is None
        self._credential: Any = None
        self._database: DatabaseProxy | None = None
        self._containers: dict[str, CosmosContainer] = {}
        self._initialized = False

    @classmethod
    def from_env(cls) -> CosmosStore:
        return cls(CosmosSettings.from_env())

    async def initialize(self) -> None:
        """Connect and verify the database is reachable."""
        if self._initialized:
            return

        endpoint = self.settings.endpoint
        if self._client is None:
            self._credential = get_credential(self.settings)
            self._client = CosmosClient(
                endpoint,
                credential=self._credential,
                user_agent_suffix=self.settings.application_name,
                **self.settings.client_options,
            )

        try:
            database = self._client.get_database_client(self.settings.database_name)
            await database.read()
            self._database = database
        except CosmosHttpResponseError as e:
            await self.close()
            if e.status_code in (401, 403):
                raise AuthenticationError(endpoint, str(e), e.status_code) from e
            raise StoreConnectionError(endpoint, e) from e
        except Exception as e:
            await self.close()
            raise StoreConnectionError(endpoint, e) from e

        self._initialized = True
        logger.info(
            "Connected to Cosmos DB",
            extra={
                "endpoint": endpoint,
                "database": self.settings.database_name,
                "auth": self.settings.auth_method.value,
            },
        )

    async def ensure_container(self, name: str, partition_key_path: str = "/id") -> CosmosContainer:
        """Create a container if it does not exist yet."""
        if self._database is None:
            raise StoreError("ensure_container", name, cause=RuntimeError("Store not initialized"))

        with translate_errors("ensure_container", name, self.settings.endpoint):
            proxy = await self._database.create_container_if_not_exists(
                id=name,
                partition_key=PartitionKey(path=partition_key_path),
            )
        logger.info("Container created/verified", extra={"container": name})
        container = CosmosContainer(proxy, self.settings.endpoint)
        self._containers[name] = container
        return container

    def get_container(self, name: str) -> CosmosContainer:
        """Get a container handle by name.

        No round trip is made; a missing container surfaces as a
        StoreError on first use.
        """
        if self._database is None:
            raise StoreError("get_container", name, cause=RuntimeError("Store not initialized"))
        if name not in self._containers:
            proxy = self._database.get_container_client(name)
            self._containers[name] = CosmosContainer(proxy, self.settings.endpoint)
        return self._containers[name]

    async def close(self) -> None:
        """Close the client and credential owned by this store."""
        if self._client is not None and self._owns_client:
            await self._client.close()
            self._client = None
        self._database = None
        self._containers = {}
        self._initialized = False

        # AAD credentials hold their own transport
        if self._credential is not None and hasattr(self._credential, "close"):
            await self._credential.close()
        self._credential = None

    async def __aenter__(self) -> CosmosStore:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
