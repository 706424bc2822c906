"""
Store collaborator interfaces.

Defines the contract a store backend must implement to be used by the
repository. Backends work on plain document dictionaries and raise the
exceptions from ``cosmos_repository.exceptions``:

- ItemNotFoundError when an id/partition key pair does not exist
- ItemConflictError when a create collides with an existing item
- StoreError for any other failure
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from .paging import ItemCursor
from .predicates import Predicate


class ItemContainer(ABC):
    """A named collection of partitioned documents.

    Implementations must be safe for concurrent use by multiple
    operations.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Container name."""

    @abstractmethod
    async def read_item(self, item_id: str, partition_key: str) -> dict[str, Any]:
        """Read a single document.

        Raises:
            ItemNotFoundError: If the document does not exist
        """

    @abstractmethod
    async def create_item(self, body: dict[str, Any], partition_key: str) -> dict[str, Any]:
        """Create a document and return it as stored.

        Raises:
            ItemConflictError: If the id/partition key pair already exists
        """

    @abstractmethod
    async def upsert_item(self, body: dict[str, Any], partition_key: str) -> dict[str, Any]:
        """Create or fully replace a document and return it as stored."""

    @abstractmethod
    async def delete_item(self, item_id: str, partition_key: str) -> None:
        """Delete a document.

        Raises:
            ItemNotFoundError: If the document does not exist
        """

    @abstractmethod
    def query_items(
        self,
        predicate: Predicate | None,
        max_item_count: int | None = None,
        continuation_token: str | None = None,
    ) -> ItemCursor:
        """Open a cursor over documents matching the predicate.

        Args:
            predicate: Filter to apply, or None for every document
            max_item_count: Preferred batch size per fetch
            continuation_token: Token from a previous page to resume from
        """

    @abstractmethod
    async def count_items(self, predicate: Predicate | None) -> int:
        """Count documents matching the predicate."""


class ItemStore(ABC):
    """Handle yielding containers by name."""

    @abstractmethod
    def get_container(self, name: str) -> ItemContainer:
        """Get a container handle by name."""
