"""
In-memory store.

Implements the store collaborator contract over plain dictionaries for
local development and tests. Behaves like the real store where the
repository can observe it: documents are keyed by (id, partition key),
creates conflict, reads and deletes of missing items fail, queries are
served in pages with a request charge and a continuation token.
"""

from __future__ import annotations

import asyncio
import copy
import time
import uuid
from typing import Any

from ..exceptions import ItemConflictError, ItemNotFoundError, StoreError
from ..paging import FeedBatch, ItemCursor
from ..predicates import Predicate
from ..protocols import ItemContainer, ItemStore

DEFAULT_PAGE_SIZE = 100
DEFAULT_REQUEST_CHARGE = 1.0


class InMemoryCursor(ItemCursor):
    """Cursor over a snapshot of matching documents."""

    def __init__(
        self,
        container_name: str,
        docs: list[dict[str, Any]],
        batch_size: int,
        request_charge: float,
        offset: int = 0,
    ) -> None:
        self._container_name = container_name
        self._docs = docs
        self._batch_size = batch_size
        self._request_charge = request_charge
        self._offset = offset
        self._closed = False

    @property
    def has_more_results(self) -> bool:
        return not self._closed and self._offset < len(self._docs)

    @property
    def closed(self) -> bool:
        return self._closed

    async def fetch_next(self) -> FeedBatch:
        if self._closed:
            raise StoreError("fetch_next", self._container_name, cause=RuntimeError("Cursor closed"))
        await asyncio.sleep(0)

        end = self._offset + self._batch_size
        batch = self._docs[self._offset : end]
        self._offset = min(end, len(self._docs))
        token = str(self._offset) if self._offset < len(self._docs) else None
        return FeedBatch(
            items=copy.deepcopy(batch),
            request_charge=self._request_charge,
            continuation_token=token,
        )

    async def close(self) -> None:
        self._closed = True


class InMemoryContainer(ItemContainer):
    """Container holding documents in insertion order.

    Args:
        name: Container name
        page_size: Default number of documents per query fetch
        request_charge: Charge reported for every query fetch
    """

    def __init__(
        self,
        name: str,
        page_size: int = DEFAULT_PAGE_SIZE,
        request_charge: float = DEFAULT_REQUEST_CHARGE,
    ) -> None:
        self._name = name
        self._page_size = page_size
        self._request_charge = request_charge
        self._docs: dict[tuple[str, str], dict[str, Any]] = {}

    @property
    def name(self) -> str:
        return self._name

    def __len__(self) -> int:
        return len(self._docs)

    def _stamp(self, body: dict[str, Any], operation: str) -> dict[str, Any]:
        """Copy a document and add store-assigned system properties."""
        if not body.get("id"):
            raise StoreError(operation, self._name, status_code=400, cause=ValueError("id is required"))
        doc = copy.deepcopy(body)
        doc["_etag"] = f'"{uuid.uuid4()}"'
        doc["_ts"] = int(time.time())
        return doc

    async def read_item(self, item_id: str, partition_key: str) -> dict[str, Any]:
        await asyncio.sleep(0)
        doc = self._docs.get((item_id, partition_key))
        if doc is None:
            raise ItemNotFoundError(item_id, partition_key, self._name)
        return copy.deepcopy(doc)

    async def create_item(self, body: dict[str, Any], partition_key: str) -> dict[str, Any]:
        await asyncio.sleep(0)
        doc = self._stamp(body, "create_item")
        key = (doc["id"], partition_key)
        if key in self._docs:
            raise ItemConflictError(doc["id"], partition_key, self._name)
        self._docs[key] = doc
        return copy.deepcopy(doc)

    async def upsert_item(self, body: dict[str, Any], partition_key: str) -> dict[str, Any]:
        await asyncio.sleep(0)
        doc = self._stamp(body, "upsert_item")
        self._docs[(doc["id"], partition_key)] = doc
        return copy.deepcopy(doc)

    async def delete_item(self, item_id: str, partition_key: str) -> None:
        await asyncio.sleep(0)
        if self._docs.pop((item_id, partition_key), None) is None:
            raise ItemNotFoundError(item_id, partition_key, self._name)

    def query_items(
        self,
        predicate: Predicate | None,
        max_item_count: int | None = None,
        continuation_token: str | None = None,
    ) -> InMemoryCursor:
        offset = 0
        if continuation_token is not None:
            try:
                offset = int(continuation_token)
            except ValueError as e:
                raise StoreError("query_items", self._name, status_code=400, cause=e) from e

        matches = [doc for doc in self._docs.values() if predicate is None or predicate.matches(doc)]
        return InMemoryCursor(
            self._name,
            matches,
            batch_size=max_item_count or self._page_size,
            request_charge=self._request_charge,
            offset=offset,
        )

    async def count_items(self, predicate: Predicate | None) -> int:
        await asyncio.sleep(0)
        return sum(1 for doc in self._docs.values() if predicate is None or predicate.matches(doc))


class InMemoryStore(ItemStore):
    """Store creating containers on first access."""

    container_class: type[InMemoryContainer] = InMemoryContainer

    def __init__(
        self,
        page_size: int = DEFAULT_PAGE_SIZE,
        request_charge: float = DEFAULT_REQUEST_CHARGE,
    ) -> None:
        self._page_size = page_size
        self._request_charge = request_charge
        self._containers: dict[str, InMemoryContainer] = {}

    def get_container(self, name: str) -> InMemoryContainer:
        if name not in self._containers:
            self._containers[name] = self.container_class(
                name, page_size=self._page_size, request_charge=self._request_charge
            )
        return self._containers[name]
