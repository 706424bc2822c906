"""
Item contract for documents stored through the repository.

Every stored entity carries an identifier, a type discriminator and a
partition key. Containers may hold several entity kinds side by side;
the discriminator keeps them apart at query time.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field, fields
from typing import Any, TypeVar

# Document field holding the partition key projection
PARTITION_KEY_FIELD = "partitionKey"

# Discriminator field name
TYPE_FIELD = "type"

# Store-assigned system properties that never round-trip into item fields
SYSTEM_PROPERTIES = frozenset({"_rid", "_self", "_etag", "_attachments", "_ts"})

TItem = TypeVar("TItem", bound="Item")


class _DefaultPartitionKey:
    """Sentinel meaning "no partition key given, use the item id"."""

    _instance: _DefaultPartitionKey | None = None

    def __new__(cls) -> _DefaultPartitionKey:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "DEFAULT_PARTITION_KEY"

    def __bool__(self) -> bool:
        return False


DEFAULT_PARTITION_KEY = _DefaultPartitionKey()

PartitionKeyValue = str | _DefaultPartitionKey | None


def resolve_partition_key(item_id: str, partition_key: PartitionKeyValue = None) -> str:
    """Resolve the partition key for a single-item operation.

    Containers partitioned on ``/id`` can omit the key entirely. Containers
    partitioned on any other path must always pass it explicitly.

    Args:
        item_id: Item identifier
        partition_key: Explicit partition key, None or DEFAULT_PARTITION_KEY

    Returns:
        The explicit partition key, or the item id when none was given
    """
    if partition_key is None or partition_key is DEFAULT_PARTITION_KEY:
        return item_id
    return partition_key  # type: ignore[return-value]


def new_item_id() -> str:
    """Generate a globally unique item identifier."""
    return str(uuid.uuid4())


@dataclass(kw_only=True)
class Item:
    """Base class for every entity stored through the repository.

    Subclasses are dataclasses adding their own fields. Override
    ``partition_key`` to route documents by something other than the id,
    and ``type_name`` to store a discriminator other than the class name.

    Attributes:
        id: Globally unique identifier, the store's primary key
        type: Discriminator naming the entity kind. None for untyped documents
        etag: Store-assigned entity tag, populated on hydration
        timestamp: Store-assigned last-modified time (epoch seconds)
    """

    id: str = field(default_factory=new_item_id)
    type: str | None = None

    # Store metadata, read-only from the caller's point of view
    etag: str | None = field(default=None, compare=False, repr=False)
    timestamp: int | None = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.type is None:
            self.type = self.type_name()

    @classmethod
    def type_name(cls) -> str:
        """Canonical discriminator for this entity kind."""
        return cls.__name__

    @property
    def partition_key(self) -> str:
        """Partition key value. Defaults to the item id."""
        return self.id

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a store document."""
        doc = asdict(self)
        doc.pop("etag", None)
        doc.pop("timestamp", None)
        if not doc.get(TYPE_FIELD):
            doc.pop(TYPE_FIELD, None)
        doc[PARTITION_KEY_FIELD] = self.partition_key
        return doc

    @classmethod
    def from_dict(cls: type[TItem], data: dict[str, Any]) -> TItem:
        """Deserialize from a store document.

        Unknown keys and store system properties are ignored. A document
        without a discriminator stays untyped.
        """
        names = {f.name for f in fields(cls) if f.init} - {"etag", "timestamp"}
        kwargs = {k: v for k, v in data.items() if k in names}
        item = cls(**kwargs)
        item.type = data.get(TYPE_FIELD) or None
        item.etag = data.get("_etag")
        item.timestamp = data.get("_ts")
        return item
