"""SQLAlchemy-backed EventPersistence adapter for annals.

This module provides an asyncio, SQLAlchemy Core implementation of the
EventPersistence interface on top of the `events` table. It commits one
aggregate's batch per transaction, serves per-aggregate, global-page and
streaming reads, deletes whole aggregates, and bulk-loads imported batches.

Usage:
    Instantiate SqlAlchemyEventPersistence with an AsyncEngine (see
    `annals.adapters.db.engine.make_engine`). Connections are borrowed from
    the engine's pool per operation; only `import_events` keeps one connection
    for its entire run.

Exceptions:
    Maps SQLAlchemy errors to annals event store exceptions. Uniqueness
    violations on `(aggregate_id, aggregate_sequence_number)` become
    `OptimisticConcurrencyError`, every other driver error a `PersistenceError`.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterable, Sequence
from typing import TYPE_CHECKING, Any, NoReturn, cast

from sqlalchemy import delete, func, insert, select
from sqlalchemy.exc import DBAPIError, IntegrityError

from annals.adapters.db.errors import integrity_error_message, is_unique_violation
from annals.interfaces.eventstore import (
    AllCommittedEventsPage,
    CommittedEvent,
    EventPersistence,
    EventStream,
    GlobalPosition,
    OptimisticConcurrencyError,
    PersistenceError,
    SerializedEvent,
    next_position_after,
    validate_batch,
)

from ..schema import SEQUENCE_CONFLICT_COLUMNS, events
from .stream import SqlAlchemyEventStream

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

logger = logging.getLogger(__name__)

DEFAULT_STREAMING_BATCH_SIZE = 200


class SqlAlchemyEventPersistence(EventPersistence):
    """SQLAlchemy-backed EventPersistence.

    - Uses the canonical `events` table (see adapters.eventstore.schema).
    - `global_sequence_number` comes from the table's identity column only.
    - Returns committed events in the **same order** as provided.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        *,
        streaming_batch_size: int = DEFAULT_STREAMING_BATCH_SIZE,
        prefer_streaming: bool = False,
    ):
        if streaming_batch_size < 1:
            raise ValueError("streaming_batch_size must be >= 1")
        self.engine = engine
        self.streaming_batch_size = streaming_batch_size
        self._prefer_streaming = prefer_streaming

    # --------------------------------------------------------------------- #
    # Interface implementation
    # --------------------------------------------------------------------- #

    @property
    def prefer_streaming(self) -> bool:
        return self._prefer_streaming

    async def commit_events(
        self, aggregate_id: str, serialized_events: Sequence[SerializedEvent]
    ) -> Sequence[CommittedEvent]:
        if not serialized_events:
            return []

        ordered = validate_batch(aggregate_id, serialized_events)

        logger.debug(
            "Committing %d events to the event store for aggregate '%s'",
            len(ordered),
            aggregate_id,
        )

        try:
            async with self.engine.begin() as connection:
                tip = await self._fetch_aggregate_tip(connection, aggregate_id)
                expected_first = 1 if tip is None else tip + 1
                first = ordered[0].aggregate_sequence_number
                if first != expected_first:
                    logger.debug(
                        "Optimistic concurrency conflict for aggregate '%s': "
                        "expected first sequence number %d, got %d",
                        aggregate_id,
                        expected_first,
                        first,
                    )
                    raise OptimisticConcurrencyError(
                        f"expected first sequence number {expected_first}, got {first}"
                    )
                global_sequence_numbers = await self._insert_returning(
                    connection, ordered
                )
        except IntegrityError as e:
            self._raise_eventstore_error_from_integrity_error(aggregate_id, e)
        except DBAPIError as e:  # OperationalError, InterfaceError, DataError, ...
            raise PersistenceError(str(e)) from e

        return [
            event.to_committed(global_sequence_numbers[event.aggregate_sequence_number])
            for event in serialized_events
        ]

    async def load_committed_events(
        self, aggregate_id: str, from_sequence_number: int = 1
    ) -> Sequence[CommittedEvent]:
        if from_sequence_number < 1:
            raise ValueError("from_sequence_number must be >= 1")

        stmt = (
            select(events)
            .where(events.c.aggregate_id == aggregate_id)
            .where(events.c.aggregate_sequence_number >= from_sequence_number)
            .order_by(events.c.aggregate_sequence_number.asc())
        )
        return await self._fetch_events(stmt)

    async def load_all_committed_events(
        self, global_position: GlobalPosition, page_size: int
    ) -> AllCommittedEventsPage:
        if page_size < 1:
            raise ValueError("page_size must be >= 1")

        start_position = global_position.offset
        end_position = start_position + page_size

        stmt = (
            select(events)
            .where(events.c.global_sequence_number >= start_position)
            .where(events.c.global_sequence_number <= end_position)
            .order_by(events.c.global_sequence_number.asc())
        )
        page = await self._fetch_events(stmt)

        return AllCommittedEventsPage(
            next_position=next_position_after(start_position, page), events=page
        )

    def open_stream(
        self,
        aggregate_id: str,
        from_sequence_number: int = 1,
        batch_size: int | None = None,
    ) -> EventStream:
        return SqlAlchemyEventStream(
            self.engine,
            aggregate_id,
            from_sequence_number,
            self.streaming_batch_size if batch_size is None else batch_size,
        )

    async def delete_events(self, aggregate_id: str) -> None:
        stmt = delete(events).where(events.c.aggregate_id == aggregate_id)
        try:
            async with self.engine.begin() as connection:
                deleted = (await connection.execute(stmt)).rowcount
        except DBAPIError as e:
            raise PersistenceError(str(e)) from e

        logger.debug(
            "Deleted aggregate '%s' by deleting all of its %d events",
            aggregate_id,
            deleted,
        )

    async def import_events(
        self, batches: AsyncIterable[Sequence[SerializedEvent]]
    ) -> int:
        started = time.perf_counter()
        imported = 0

        try:
            async with self.engine.connect() as connection:
                async for batch in batches:
                    rows = [event.as_insertable_row() for event in batch]
                    if not rows:
                        continue
                    await self._bulk_insert(connection, rows)
                    await connection.commit()
                    imported += len(rows)
        except DBAPIError as e:
            raise PersistenceError(str(e)) from e

        logger.info(
            "It took %.2f seconds to import %d events",
            time.perf_counter() - started,
            imported,
        )
        return imported

    # --------------------------------------------------------------------- #
    # Internals
    # --------------------------------------------------------------------- #

    async def _fetch_events(self, stmt) -> list[CommittedEvent]:
        """Run a SELECT over the events table and map rows to CommittedEvent."""
        try:
            async with self.engine.connect() as connection:
                rows = (await connection.execute(stmt)).mappings().all()
        except DBAPIError as e:
            raise PersistenceError(str(e)) from e
        return [CommittedEvent(**row) for row in rows]

    @staticmethod
    async def _fetch_aggregate_tip(
        connection: AsyncConnection, aggregate_id: str
    ) -> int | None:
        """Retrieves the highest committed sequence number of an aggregate.

        Args:
            connection: The connection of the ongoing commit transaction.
            aggregate_id: The identifier of the aggregate.

        Returns:
            int | None: The maximum sequence number, or None if the aggregate has no events.
        """
        stmt = select(func.max(events.c.aggregate_sequence_number)).where(
            events.c.aggregate_id == aggregate_id
        )
        result = (await connection.execute(stmt)).scalar_one_or_none()
        return cast(int | None, result)  # for mypy # pragma: no mutate

    @staticmethod
    async def _insert_returning(
        connection: AsyncConnection, ordered: Sequence[SerializedEvent]
    ) -> dict[int, int]:
        """Insert the batch in one statement and collect the assigned global sequence numbers.

        Args:
            connection: The connection of the ongoing commit transaction.
            ordered: The batch, ordered by aggregate sequence number ascending.

        Returns:
            dict[int, int]: aggregate sequence number -> global sequence number.
        """
        stmt = (
            insert(events)
            .values([event.as_insertable_row() for event in ordered])
            .returning(
                events.c.aggregate_sequence_number, events.c.global_sequence_number
            )
        )
        result = await connection.execute(stmt)
        return {
            aggregate_sequence_number: global_sequence_number
            for aggregate_sequence_number, global_sequence_number in result.all()
        }

    async def _bulk_insert(
        self, connection: AsyncConnection, rows: list[dict[str, Any]]
    ) -> None:
        """Write rows through the driver's executemany path, one chunk at a time."""
        size = self.streaming_batch_size
        for start in range(0, len(rows), size):
            await connection.execute(insert(events), rows[start : start + size])

    @staticmethod
    def _raise_eventstore_error_from_integrity_error(
        aggregate_id: str, integrity_error: IntegrityError
    ) -> NoReturn:
        """Handles SQLAlchemy IntegrityError exceptions by raising appropriate event store errors.

        Raises:
            OptimisticConcurrencyError: If the violated constraint is the
                `(aggregate_id, aggregate_sequence_number)` uniqueness.
            PersistenceError: For any other integrity errors.
        """
        msg = integrity_error_message(integrity_error)

        if is_unique_violation(integrity_error, SEQUENCE_CONFLICT_COLUMNS):
            logger.debug(
                "Event insert detected an optimistic concurrency conflict for aggregate '%s'",
                aggregate_id,
            )
            raise OptimisticConcurrencyError(msg) from integrity_error

        raise PersistenceError(msg) from integrity_error
