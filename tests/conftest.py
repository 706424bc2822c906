"""
Shared test configuration and fixtures.

Provides an in-memory store whose containers record the partition key
of every single-item call, so tests can check partition key resolution
without a live Cosmos DB account.
"""

import logging

import pytest
from doubles import RecordingStore
from models import Gadget, Order, Widget

from cosmos_repository import Repository


@pytest.fixture
def store():
    """Recording in-memory store."""
    return RecordingStore()


@pytest.fixture
def widgets(store):
    """Widget repository over the recording store."""
    return Repository(store, Widget, logger=logging.getLogger("tests.widgets"))


@pytest.fixture
def gadgets(store):
    return Repository(store, Gadget, logger=logging.getLogger("tests.gadgets"))


@pytest.fixture
def orders(store):
    return Repository(store, Order, logger=logging.getLogger("tests.orders"))
