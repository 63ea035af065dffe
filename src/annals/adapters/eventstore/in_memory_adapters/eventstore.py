"""In memory event persistence implementation.

All events are stored in memory and lost when the instance is discarded.
Use for unit tests, prototyping, or scenarios where durability is not required.

This implementation passes all contract tests for the EventPersistence
interface. It plays the role of the storage layer itself, so it owns the
monotonic counter that stands in for the identity column.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterable, Sequence

from annals.interfaces.eventstore import (
    AllCommittedEventsPage,
    BatchedEventStream,
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

logger = logging.getLogger(__name__)

DEFAULT_STREAMING_BATCH_SIZE = 200


class InMemoryEventStream(BatchedEventStream):
    """Batch cursor over an `InMemoryEventPersistence`."""

    def __init__(
        self,
        store: InMemoryEventPersistence,
        aggregate_id: str,
        from_sequence_number: int,
        batch_size: int,
    ) -> None:
        super().__init__(aggregate_id, from_sequence_number, batch_size)
        self._store = store

    async def _fetch_window(
        self, start_row: int, max_rows: int
    ) -> Sequence[CommittedEvent]:
        matching = await self._store.load_committed_events(
            self.aggregate_id, self.from_sequence_number
        )
        return matching[start_row : start_row + max_rows]


class InMemoryEventPersistence(EventPersistence):
    """In-memory EventPersistence for testing and non-durable use cases.

    - Non-durable: all data is lost when the instance is discarded.
    - Global sequence numbers are never reused, even after deletion.
    """

    def __init__(
        self,
        *,
        streaming_batch_size: int = DEFAULT_STREAMING_BATCH_SIZE,
        prefer_streaming: bool = False,
    ):
        if streaming_batch_size < 1:
            raise ValueError("streaming_batch_size must be >= 1")
        self.streaming_batch_size = streaming_batch_size
        self._prefer_streaming = prefer_streaming
        self._events: list[CommittedEvent] = []
        self._global_sequence_number = 0
        self._lock = asyncio.Lock()

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

        async with self._lock:
            tip = self._fetch_aggregate_tip(aggregate_id)
            expected_first = 1 if tip is None else tip + 1
            first = ordered[0].aggregate_sequence_number
            if first != expected_first:
                raise OptimisticConcurrencyError(
                    f"expected first sequence number {expected_first}, got {first}"
                )

            committed = {}
            for event in ordered:
                self._global_sequence_number += 1
                committed[event.aggregate_sequence_number] = event.to_committed(
                    self._global_sequence_number
                )
            self._events.extend(committed.values())

        return [committed[e.aggregate_sequence_number] for e in serialized_events]

    async def load_committed_events(
        self, aggregate_id: str, from_sequence_number: int = 1
    ) -> Sequence[CommittedEvent]:
        if from_sequence_number < 1:
            raise ValueError("from_sequence_number must be >= 1")

        return sorted(
            (
                e
                for e in self._events
                if e.aggregate_id == aggregate_id
                and e.aggregate_sequence_number >= from_sequence_number
            ),
            key=lambda e: e.aggregate_sequence_number,
        )

    async def load_all_committed_events(
        self, global_position: GlobalPosition, page_size: int
    ) -> AllCommittedEventsPage:
        if page_size < 1:
            raise ValueError("page_size must be >= 1")

        start_position = global_position.offset
        end_position = start_position + page_size
        page = sorted(
            (
                e
                for e in self._events
                if start_position <= e.global_sequence_number <= end_position
            ),
            key=lambda e: e.global_sequence_number,
        )
        return AllCommittedEventsPage(
            next_position=next_position_after(start_position, page), events=page
        )

    def open_stream(
        self,
        aggregate_id: str,
        from_sequence_number: int = 1,
        batch_size: int | None = None,
    ) -> EventStream:
        return InMemoryEventStream(
            self,
            aggregate_id,
            from_sequence_number,
            self.streaming_batch_size if batch_size is None else batch_size,
        )

    async def delete_events(self, aggregate_id: str) -> None:
        async with self._lock:
            kept = [e for e in self._events if e.aggregate_id != aggregate_id]
            deleted = len(self._events) - len(kept)
            self._events = kept

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
        async for batch in batches:
            async with self._lock:
                self._check_unique(batch)
                for event in batch:
                    self._global_sequence_number += 1
                    self._events.append(event.to_committed(self._global_sequence_number))
            imported += len(batch)

        logger.info(
            "It took %.2f seconds to import %d events",
            time.perf_counter() - started,
            imported,
        )
        return imported

    # --------------------------------------------------------------------- #
    # Internals
    # --------------------------------------------------------------------- #

    def _check_unique(self, batch: Sequence[SerializedEvent]) -> None:
        """Reject a batch reusing an `(aggregate_id, aggregate_sequence_number)` key.

        Mirrors the unique constraint of the events table: the whole batch is
        refused before any of it is stored.
        """
        taken = {(e.aggregate_id, e.aggregate_sequence_number) for e in self._events}
        for event in batch:
            key = (event.aggregate_id, event.aggregate_sequence_number)
            if key in taken:
                raise PersistenceError(
                    f"duplicate event {event.aggregate_sequence_number} "
                    f"of aggregate '{event.aggregate_id}'"
                )
            taken.add(key)

    def _fetch_aggregate_tip(self, aggregate_id: str) -> int | None:
        """Retrieves the highest sequence number of the given aggregate, or None."""

        if not (mine := [e for e in self._events if e.aggregate_id == aggregate_id]):
            return None
        return max(e.aggregate_sequence_number for e in mine)
