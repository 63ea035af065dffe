"""Pytest fixtures for EventPersistence contract tests."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio

from annals.adapters.eventstore.in_memory_adapters import InMemoryEventPersistence
from annals.adapters.eventstore.sqlalchemy_adapters import SqlAlchemyEventPersistence
from annals.interfaces.eventstore import EventPersistence

# pylint: disable=redefined-outer-name

#: Small enough that a handful of events spans several stream batches.
STREAMING_BATCH_SIZE = 3


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def store(
    request: pytest.FixtureRequest, sqlite_engine_memory
) -> AsyncIterator[EventPersistence]:
    """Return a fresh event store for the requested backend.

    Current params:
      - `"memory"` → `InMemoryEventPersistence` (non-durable, in-memory)
      - `"sqlite"` → `SqlAlchemyEventPersistence` (SQLite in-memory via aiosqlite)

    Each invocation yields a brand-new store instance for isolation.
    """
    match request.param:
        case "memory":
            yield InMemoryEventPersistence(streaming_batch_size=STREAMING_BATCH_SIZE)
        case "sqlite":
            yield SqlAlchemyEventPersistence(
                sqlite_engine_memory, streaming_batch_size=STREAMING_BATCH_SIZE
            )
        case _:
            raise ValueError(f"unknown store type: {request.param}")
