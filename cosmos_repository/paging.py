"""
Result cursors and page collection.

A query yields an ``ItemCursor`` that fetches results batch by batch.
The collectors drive a cursor either to completion or until a page is
full, accumulating request charge and the continuation token needed to
resume.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from .exceptions import ValidationError

T = TypeVar("T")


@dataclass
class FeedBatch:
    """One fetch from a cursor.

    Attributes:
        items: Documents returned by this fetch, in store order
        request_charge: Store-reported cost of this fetch
        continuation_token: Token to resume after this fetch, None when exhausted
    """

    items: list[dict[str, Any]] = field(default_factory=list)
    request_charge: float = 0.0
    continuation_token: str | None = None


@dataclass
class Page(Generic[T]):
    """A bounded page of query results.

    Attributes:
        items: Results in store order, at most the requested page size
        request_charge: Sum of the charges of every batch fetched
        continuation_token: Token to fetch the next page, None when exhausted
    """

    items: list[T] = field(default_factory=list)
    request_charge: float = 0.0
    continuation_token: str | None = None

    @property
    def has_more(self) -> bool:
        return self.continuation_token is not None


class ItemCursor(ABC):
    """Cursor over query results.

    Use as an async context manager so the cursor is released whether
    collection succeeds, fails or is cancelled.
    """

    @property
    @abstractmethod
    def has_more_results(self) -> bool:
        """Whether another fetch may return results."""

    @abstractmethod
    async def fetch_next(self) -> FeedBatch:
        """Fetch the next batch of results."""

    async def close(self) -> None:
        """Release resources held by the cursor."""

    async def __aenter__(self) -> ItemCursor:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


def check_cancelled(cancel_event: asyncio.Event | None) -> None:
    """Raise CancelledError if cancellation was requested."""
    if cancel_event is not None and cancel_event.is_set():
        raise asyncio.CancelledError()


async def collect_all(
    cursor: ItemCursor,
    cancel_event: asyncio.Event | None = None,
) -> list[dict[str, Any]]:
    """Drive a cursor to completion and return every document.

    Cancellation is checked on entry and before each fetch; a fetch
    already in flight is not interrupted.
    """
    items: list[dict[str, Any]] = []
    async with cursor:
        check_cancelled(cancel_event)
        while cursor.has_more_results:
            check_cancelled(cancel_event)
            batch = await cursor.fetch_next()
            items.extend(batch.items)
    return items


async def collect_page(
    cursor: ItemCursor,
    page_size: int,
    cancel_event: asyncio.Event | None = None,
) -> Page[dict[str, Any]]:
    """Collect at most ``page_size`` documents from a cursor.

    Documents past ``page_size`` in the last fetched batch are dropped.
    The charge of every fetched batch counts in full, including the last
    one, and the continuation token is the one the store reported for the
    last fetch.

    Raises:
        ValidationError: If page_size is less than 1
    """
    if page_size < 1:
        raise ValidationError("page_size", "must be at least 1", str(page_size))

    items: list[dict[str, Any]] = []
    charge = 0.0
    token: str | None = None

    async with cursor:
        check_cancelled(cancel_event)
        while len(items) < page_size and cursor.has_more_results:
            check_cancelled(cancel_event)
            batch = await cursor.fetch_next()
            remaining = page_size - len(items)
            items = items + batch.items[:remaining]
            charge += batch.request_charge
            token = batch.continuation_token

    return Page(items=items, request_charge=charge, continuation_token=token)
