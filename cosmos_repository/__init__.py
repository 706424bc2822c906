"""
Cosmos Repository

Generic, typed data access over a partitioned document store.

Provides:
- Typed CRUD on named containers with id-as-partition-key defaulting
- Predicate queries scoped to one entity type by a discriminator
- Paged queries with request charge and continuation tokens
- Concurrent batch create/update
- Azure Cosmos DB and in-memory store backends

Usage:

    >>> from dataclasses import dataclass
    >>> from cosmos_repository import CosmosSettings, CosmosStore, Field, Item, Repository
    >>>
    >>> @dataclass
    ... class Widget(Item):
    ...     price: float = 0.0
    >>>
    >>> async with CosmosStore(CosmosSettings.from_env()) as store:
    ...     widgets = Repository(store, Widget)
    ...     await widgets.create(Widget(id="a", price=20), "catalog")
    ...     expensive = await widgets.find("catalog", Field("price") > 10)
"""

from .config import CosmosAuthMethod, CosmosSettings, get_credential
from .exceptions import (
    AuthenticationError,
    ItemConflictError,
    ItemNotFoundError,
    RepositoryError,
    StoreConnectionError,
    StoreError,
    ValidationError,
)
from .items import DEFAULT_PARTITION_KEY, Item, new_item_id, resolve_partition_key
from .logging_utils import (
    RepositoryLoggerAdapter,
    StructuredJsonFormatter,
    configure_structured_logging,
    get_repository_logger,
)
from .paging import FeedBatch, ItemCursor, Page, collect_all, collect_page
from .predicates import Field, Predicate, PredicateComposer, build_query
from .protocols import ItemContainer, ItemStore
from .repository import Repository
from .stores import CosmosStore, InMemoryStore

__all__ = [
    # Core
    "Repository",
    "Item",
    "DEFAULT_PARTITION_KEY",
    "resolve_partition_key",
    "new_item_id",
    # Predicates
    "Field",
    "Predicate",
    "PredicateComposer",
    "build_query",
    # Paging
    "Page",
    "FeedBatch",
    "ItemCursor",
    "collect_all",
    "collect_page",
    # Store contracts and backends
    "ItemStore",
    "ItemContainer",
    "CosmosStore",
    "InMemoryStore",
    # Configuration
    "CosmosSettings",
    "CosmosAuthMethod",
    "get_credential",
    # Logging
    "StructuredJsonFormatter",
    "configure_structured_logging",
    "get_repository_logger",
    "RepositoryLoggerAdapter",
    # Exceptions
    "RepositoryError",
    "ItemNotFoundError",
    "ItemConflictError",
    "StoreError",
    "StoreConnectionError",
    "AuthenticationError",
    "ValidationError",
]

__version__ = "0.1.0"
