"""
Store backends.

- InMemoryStore: dictionaries in process, for development and tests
- CosmosStore: Azure Cosmos DB via the async SDK
"""

from .cosmos import CosmosContainer, CosmosCursor, CosmosStore
from .memory import InMemoryContainer, InMemoryCursor, InMemoryStore

__all__ = [
    "CosmosStore",
    "CosmosContainer",
    "CosmosCursor",
    "InMemoryStore",
    "InMemoryContainer",
    "InMemoryCursor",
]
