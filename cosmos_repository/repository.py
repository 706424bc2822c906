"""
Generic repository over a partitioned document store.

A ``Repository`` is bound to one entity type and works against any
container of an ``ItemStore``. It resolves partition keys, scopes every
query to its entity type through the discriminator, collects paged
results and fans out batch writes concurrently.

Usage:

    >>> repo = Repository(store, Widget)
    >>> await repo.create(Widget(id="a", price=20), "catalog")
    >>> expensive = await repo.find("catalog", Field("price") > 10)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from typing import Any, Generic

from .exceptions import ItemNotFoundError, ValidationError
from .items import DEFAULT_PARTITION_KEY, Item, PartitionKeyValue, TItem, resolve_partition_key
from .logging_utils import get_repository_logger
from .paging import Page, check_cancelled, collect_all, collect_page
from .predicates import Predicate, PredicateComposer
from .protocols import ItemContainer, ItemStore


class Repository(Generic[TItem]):
    """Typed CRUD and query access for one entity type.

    The repository keeps no state between calls beyond its collaborators,
    so one instance can serve any number of concurrent operations.

    Failures are logged and re-raised unchanged. The only translation is
    ``exists``, which reports a missing item as False.

    Batch writes are not atomic: every write is issued, the first failure
    propagates, and writes that already succeeded are not rolled back.
    """

    def __init__(
        self,
        store: ItemStore,
        item_type: type[TItem],
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        composer: PredicateComposer | None = None,
    ) -> None:
        """Initialize the repository.

        Args:
            store: Store handle yielding containers by name
            item_type: Entity type this repository reads and writes
            logger: Sink for failures (default: cosmos_repository.<type name>)
            composer: Builds the discriminator-scoped query predicate
        """
        if not (isinstance(item_type, type) and issubclass(item_type, Item)):
            raise ValidationError("item_type", "must be a subclass of Item")
        self._store = store
        self._item_type = item_type
        if logger is None:
            logger = get_repository_logger(item_type.type_name())
        self._logger = logger
        self._composer = composer or PredicateComposer()

    @property
    def item_type(self) -> type[TItem]:
        return self._item_type

    # =========================================================================
    # Helpers
    # =========================================================================

    @contextmanager
    def _log_failures(self, operation: str, container_id: str, **context: Any) -> Iterator[None]:
        """Log any failure raised inside the block, then re-raise it."""
        try:
            yield
        except Exception as e:
            self._logger.error(
                f"{operation} failed on container {container_id}: {e}",
                exc_info=e,
                extra={
                    "operation": operation,
                    "container": container_id,
                    "item_type": self._item_type.type_name(),
                    **context,
                },
            )
            raise

    def _container(self, container_id: str) -> ItemContainer:
        if not container_id:
            raise ValidationError("container_id", "must be a non-empty string")
        return self._store.get_container(container_id)

    def _hydrate(self, doc: dict[str, Any]) -> TItem:
        return self._item_type.from_dict(doc)

    def _scoped(self, predicate: Predicate | None) -> Predicate:
        return self._composer.build(self._item_type.type_name(), predicate)

    @staticmethod
    def _require_id(item_id: str) -> None:
        if not item_id:
            raise ValidationError("id", "item id is required")

    # =========================================================================
    # Reads
    # =========================================================================

    async def get(
        self,
        item_id: str,
        container_id: str,
        partition_key: PartitionKeyValue = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> TItem:
        """Read one item by id.

        Args:
            item_id: Item identifier
            container_id: Container name
            partition_key: Partition key value (default: the item id)
            cancel_event: Set to request cancellation

        Raises:
            ItemNotFoundError: If the item does not exist
            StoreError: For any other store failure
        """
        self._require_id(item_id)
        pk = resolve_partition_key(item_id, partition_key)

        with self._log_failures("get", container_id, item_id=item_id, partition_key=pk):
            container = self._container(container_id)
            check_cancelled(cancel_event)
            doc = await container.read_item(item_id, pk)

        return self._hydrate(doc)

    async def find(
        self,
        container_id: str,
        predicate: Predicate | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> list[TItem]:
        """Return every item of this type matching the predicate.

        Untyped documents match as well. Results are in store order.
        """
        scoped = self._scoped(predicate)

        with self._log_failures("find", container_id):
            container = self._container(container_id)
            docs = await collect_all(container.query_items(scoped), cancel_event)

        return [self._hydrate(doc) for doc in docs]

    async def get_page(
        self,
        container_id: str,
        predicate: Predicate | None = None,
        *,
        page_size: int,
        continuation_token: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> Page[TItem]:
        """Return one page of items of this type matching the predicate.

        Pass the returned ``continuation_token`` back to fetch the next
        page. ``request_charge`` covers every batch fetched for this page.
        """
        if page_size < 1:
            raise ValidationError("page_size", "must be at least 1", str(page_size))
        scoped = self._scoped(predicate)

        with self._log_failures("get_page", container_id, page_size=page_size):
            container = self._container(container_id)
            cursor = container.query_items(
                scoped,
                max_item_count=page_size,
                continuation_token=continuation_token,
            )
            page = await collect_page(cursor, page_size, cancel_event)

        return Page(
            items=[self._hydrate(doc) for doc in page.items],
            request_charge=page.request_charge,
            continuation_token=page.continuation_token,
        )

    async def exists(
        self,
        item_id: str,
        container_id: str,
        partition_key: PartitionKeyValue = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> bool:
        """Check whether an item exists by id.

        A missing item returns False; any other failure propagates.
        """
        self._require_id(item_id)
        pk = resolve_partition_key(item_id, partition_key)

        with self._log_failures("exists", container_id, item_id=item_id, partition_key=pk):
            container = self._container(container_id)
            check_cancelled(cancel_event)
            try:
                await container.read_item(item_id, pk)
            except ItemNotFoundError:
                return False

        return True

    async def exists_where(
        self,
        container_id: str,
        predicate: Predicate | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> bool:
        """Check whether any item of this type matches the predicate."""
        scoped = self._scoped(predicate)

        with self._log_failures("exists_where", container_id):
            container = self._container(container_id)
            check_cancelled(cancel_event)
            count = await container.count_items(scoped)

        return count > 0

    # =========================================================================
    # Writes
    # =========================================================================

    async def create(
        self,
        item: TItem,
        container_id: str,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> TItem:
        """Create an item and return it as stored.

        The caller sets the id; the store does not generate one.

        Raises:
            ItemConflictError: If the id/partition key pair already exists
            StoreError: For any other store failure
        """
        self._require_id(item.id)
        pk = item.partition_key

        with self._log_failures("create", container_id, item_id=item.id, partition_key=pk):
            container = self._container(container_id)
            check_cancelled(cancel_event)
            doc = await container.create_item(item.to_dict(), pk)

        return self._hydrate(doc)

    async def create_many(
        self,
        container_id: str,
        items: Iterable[TItem],
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> list[TItem]:
        """Create items concurrently.

        Results are in input order. The first failure propagates; items
        already created stay created.
        """
        tasks = [self.create(item, container_id, cancel_event=cancel_event) for item in items]
        return list(await asyncio.gather(*tasks))

    async def update(
        self,
        item: TItem,
        container_id: str,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> TItem:
        """Replace an item in full and return it as stored.

        Performed as an upsert: an item that does not exist yet is created.
        """
        self._require_id(item.id)
        pk = item.partition_key

        with self._log_failures("update", container_id, item_id=item.id, partition_key=pk):
            container = self._container(container_id)
            check_cancelled(cancel_event)
            doc = await container.upsert_item(item.to_dict(), pk)

        return self._hydrate(doc)

    async def update_many(
        self,
        container_id: str,
        items: Iterable[TItem],
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> list[TItem]:
        """Update items concurrently. Same batch semantics as create_many."""
        tasks = [self.update(item, container_id, cancel_event=cancel_event) for item in items]
        return list(await asyncio.gather(*tasks))

    async def delete(
        self,
        item_or_id: TItem | str,
        container_id: str,
        partition_key: PartitionKeyValue = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        """Delete an item by id or by instance.

        An instance is deleted under its own partition key unless one is
        given explicitly. A missing item raises ItemNotFoundError.
        """
        if isinstance(item_or_id, Item):
            item_id = item_or_id.id
            if partition_key is None or partition_key is DEFAULT_PARTITION_KEY:
                partition_key = item_or_id.partition_key
        else:
            item_id = item_or_id
        self._require_id(item_id)
        pk = resolve_partition_key(item_id, partition_key)

        with self._log_failures("delete", container_id, item_id=item_id, partition_key=pk):
            container = self._container(container_id)
            check_cancelled(cancel_event)
            await container.delete_item(item_id, pk)
