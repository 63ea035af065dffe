"""Unit tests for SqlAlchemyEventPersistence behavior beyond the shared contract.

Covers:
- a lost race on the unique constraint surfacing as OptimisticConcurrencyError
- a commit cancelled mid-transaction rolling back
- storage failures wrapped as PersistenceError with the driver error chained
- constructor validation and streaming defaults
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from sqlalchemy.exc import DBAPIError

from annals.adapters.db.engine import make_engine
from annals.adapters.eventstore.sqlalchemy_adapters import (
    SqlAlchemyEventPersistence,
    SqlAlchemyEventStream,
)
from annals.interfaces.eventstore import (
    GlobalPosition,
    OptimisticConcurrencyError,
    PersistenceError,
)

# pylint: disable=redefined-outer-name,protected-access


@pytest_asyncio.fixture
async def store(sqlite_engine_memory) -> SqlAlchemyEventPersistence:
    """SQLAlchemy store over an in-memory SQLite schema."""
    return SqlAlchemyEventPersistence(sqlite_engine_memory, streaming_batch_size=2)


@pytest_asyncio.fixture
async def store_without_schema() -> AsyncIterator[SqlAlchemyEventPersistence]:
    """SQLAlchemy store whose database has no events table."""
    engine = make_engine("sqlite+aiosqlite:///:memory:")
    yield SqlAlchemyEventPersistence(engine)
    await engine.dispose()


@pytest.mark.asyncio
async def test_lost_race_maps_unique_violation(store, make_batch, monkeypatch):
    """A concurrent writer that already took the numbers trips the unique constraint."""
    await store.commit_events("A", make_batch("A", 1, 2))

    async def stale_tip(connection, aggregate_id):  # pylint: disable=unused-argument
        return None

    monkeypatch.setattr(
        SqlAlchemyEventPersistence, "_fetch_aggregate_tip", staticmethod(stale_tip)
    )

    with pytest.raises(OptimisticConcurrencyError) as exc:
        await store.commit_events("A", make_batch("A", 1, 1))

    assert isinstance(exc.value.__cause__, DBAPIError)
    assert len(await store.load_committed_events("A")) == 2


@pytest.mark.asyncio
async def test_commit_cancelled_inside_transaction_rolls_back(store, make_batch, monkeypatch):
    """Rows inserted by a commit that is cancelled before it finishes are rolled back."""
    inserted = asyncio.Event()
    insert_returning = SqlAlchemyEventPersistence._insert_returning

    async def insert_then_stall(connection, ordered):
        result = await insert_returning(connection, ordered)
        inserted.set()
        await asyncio.Event().wait()
        return result

    monkeypatch.setattr(
        SqlAlchemyEventPersistence, "_insert_returning", staticmethod(insert_then_stall)
    )

    commit = asyncio.create_task(store.commit_events("A", make_batch("A", 1, 2)))
    await asyncio.wait_for(inserted.wait(), timeout=5)
    commit.cancel()
    with pytest.raises(asyncio.CancelledError):
        await commit
    monkeypatch.undo()

    assert list(await store.load_committed_events("A")) == []
    assert len(await store.commit_events("A", make_batch("A", 1, 2))) == 2


@pytest.mark.asyncio
async def test_conflict_is_logged(store, make_batch, caplog):
    """Detected conflicts are reported at DEBUG."""
    await store.commit_events("A", make_batch("A", 1, 1))

    with caplog.at_level(logging.DEBUG, logger="annals"):
        with pytest.raises(OptimisticConcurrencyError):
            await store.commit_events("A", make_batch("A", 1, 1))

    assert "Optimistic concurrency conflict" in caplog.text


@pytest.mark.asyncio
async def test_commit_storage_failure_is_persistence_error(store_without_schema, make_batch):
    """A missing table is a storage failure, not a concurrency conflict."""
    with pytest.raises(PersistenceError) as exc:
        await store_without_schema.commit_events("A", make_batch("A", 1, 1))

    assert isinstance(exc.value.__cause__, DBAPIError)


@pytest.mark.asyncio
async def test_read_storage_failures_are_persistence_errors(store_without_schema):
    """Every read path wraps driver errors."""
    with pytest.raises(PersistenceError):
        await store_without_schema.load_committed_events("A")
    with pytest.raises(PersistenceError):
        await store_without_schema.load_all_committed_events(GlobalPosition.start(), 5)
    with pytest.raises(PersistenceError):
        await store_without_schema.open_stream("A").next_batch()


@pytest.mark.asyncio
async def test_write_storage_failures_are_persistence_errors(
    store_without_schema, make_batch
):
    """Deletes and imports wrap driver errors as well."""

    async def batches():
        yield make_batch("A", 1, 1)

    with pytest.raises(PersistenceError):
        await store_without_schema.delete_events("A")
    with pytest.raises(PersistenceError):
        await store_without_schema.import_events(batches())


@pytest.mark.asyncio
async def test_import_logs_count_and_duration(store, make_batch, caplog):
    """The importer reports how many events it wrote and how long it took."""

    async def batches():
        yield make_batch("A", 1, 3)

    with caplog.at_level(logging.INFO, logger="annals"):
        assert await store.import_events(batches()) == 3

    assert "to import 3 events" in caplog.text


@pytest.mark.asyncio
async def test_open_stream_uses_configured_batch_size(store):
    """Without an explicit size the stream uses streaming_batch_size."""
    stream = store.open_stream("A", 4)

    assert isinstance(stream, SqlAlchemyEventStream)
    assert stream.batch_size == 2
    assert stream.from_sequence_number == 4
    assert stream.offset == 0


@pytest.mark.asyncio
async def test_prefer_streaming_flag(sqlite_engine_memory):
    """prefer_streaming reflects the constructor argument."""
    assert not SqlAlchemyEventPersistence(sqlite_engine_memory).prefer_streaming
    assert SqlAlchemyEventPersistence(
        sqlite_engine_memory, prefer_streaming=True
    ).prefer_streaming


@pytest.mark.asyncio
async def test_rejects_non_positive_streaming_batch_size(sqlite_engine_memory):
    """streaming_batch_size must be >= 1."""
    with pytest.raises(ValueError):
        SqlAlchemyEventPersistence(sqlite_engine_memory, streaming_batch_size=0)
