"""Event persistence interfaces for annals.

This module defines:
- The `SerializedEvent` input DTO and the `CommittedEvent` row DTO.
- `GlobalPosition` / `AllCommittedEventsPage` for global catch-up reads.
- The `EventPersistence` port (framework-free ABC, asyncio based).
- The `EventStream` port and `BatchedEventStream`, the resumable cursor state machine.
- A small, adapter-agnostic exception hierarchy for precise error handling.

Layering & dependency rules:
- Lives under `annals.interfaces`. Do NOT import from adapters, bootstrap, or entrypoints.
- Safe to import from adapters and entrypoints.

Contract overview
-----------------
Commit:
- Atomic write for a **single aggregate** batch; empty batches are a no-op.
- `global_sequence_number` is assigned by the store, never by the caller.
- Returns committed events in the **same order** as provided.
- Errors:
  * `InvalidEventError` — client-side invariant violations (mixed aggregates,
    non-contiguous sequence numbers, blank identifiers).
  * `OptimisticConcurrencyError` — `(aggregate_id, aggregate_sequence_number)`
    already taken or the batch does not continue the aggregate's tip.
  * `PersistenceError` — any other storage failure.

Reads:
- `load_committed_events(aggregate_id, from_sequence_number=1)` — ascending by
  `aggregate_sequence_number`.
- `load_all_committed_events(position, page_size)` — ascending by
  `global_sequence_number`, resumable through `next_position`.
- `open_stream(aggregate_id, from_sequence_number=1)` — bounded-memory batches.

Cancellation:
- Every coroutine may be cancelled through its asyncio task; single statement
  writes roll back, cursors and imports stop after the in-flight step.
"""

from __future__ import annotations

import abc
from collections.abc import AsyncIterable, Sequence
from dataclasses import dataclass
from typing import Any
from uuid import UUID

# --- Exceptions to standardize adapter behavior ---


class EventStoreError(Exception):
    """Base class for annals event store errors."""


class OptimisticConcurrencyError(EventStoreError):
    """Aggregate sequence precondition failed; reload the aggregate and retry."""


class PersistenceError(EventStoreError):
    """Storage failure unrelated to optimistic concurrency (connectivity, timeouts, ...)."""


class InvalidEventError(EventStoreError):
    """The serialized event or batch is invalid."""


# --- DTOs ---


@dataclass(frozen=True, slots=True)
class SerializedEvent:
    """A domain event ready to be persisted.

    The aggregate sequence number is assigned by the caller (the aggregate's
    in-memory version counter) before commit.
    """

    aggregate_id: str
    aggregate_name: str
    batch_id: UUID
    data: str
    metadata: str
    aggregate_sequence_number: int

    def __post_init__(self) -> None:
        if not self.aggregate_id.strip() or not self.aggregate_name.strip():
            raise InvalidEventError("aggregate_id and aggregate_name must be non-empty.")
        if self.aggregate_sequence_number < 1:
            raise InvalidEventError("aggregate_sequence_number must be >= 1")

    def as_insertable_row(self) -> dict[str, Any]:
        """Column mapping for an insert; the store assigns `global_sequence_number`."""
        return {
            "batch_id": self.batch_id,
            "aggregate_id": self.aggregate_id,
            "aggregate_name": self.aggregate_name,
            "data": self.data,
            "metadata": self.metadata,
            "aggregate_sequence_number": self.aggregate_sequence_number,
        }

    def to_committed(self, global_sequence_number: int) -> CommittedEvent:
        """Pair this event with the global sequence number assigned by the store."""
        return CommittedEvent(
            global_sequence_number=global_sequence_number, **self.as_insertable_row()
        )


@dataclass(frozen=True, slots=True)
class CommittedEvent:
    """A durable, immutable event row."""

    # pylint: disable=too-many-instance-attributes

    global_sequence_number: int
    batch_id: UUID
    aggregate_id: str
    aggregate_name: str
    data: str
    metadata: str
    aggregate_sequence_number: int


@dataclass(frozen=True, slots=True)
class GlobalPosition:
    """Position in the global event order.

    `None` is the "start" sentinel and reads as position 0.
    """

    value: int | None = None

    def __post_init__(self) -> None:
        if self.value is not None and self.value < 0:
            raise ValueError("global position must be >= 0")

    @classmethod
    def start(cls) -> GlobalPosition:
        """The sentinel position preceding every event."""
        return cls()

    @property
    def is_start(self) -> bool:
        """True for the start sentinel."""
        return self.value is None

    @property
    def offset(self) -> int:
        """The numeric position this value stands for."""
        return 0 if self.value is None else self.value


@dataclass(frozen=True, slots=True)
class AllCommittedEventsPage:
    """One page of the global event order and where to resume from."""

    next_position: GlobalPosition
    events: Sequence[CommittedEvent]


def next_position_after(
    start: int, events: Sequence[CommittedEvent]
) -> GlobalPosition:
    """Return `max(global_sequence_number) + 1`, or `start` for an empty page."""
    if not events:
        return GlobalPosition(start)
    return GlobalPosition(max(e.global_sequence_number for e in events) + 1)


def validate_batch(
    aggregate_id: str, events: Sequence[SerializedEvent]
) -> list[SerializedEvent]:
    """Check single-aggregate and contiguity invariants of a commit batch.

    Args:
        aggregate_id: The aggregate every event must belong to.
        events: The non-empty batch, in any order.

    Returns:
        The events ordered by `aggregate_sequence_number` ascending.

    Raises:
        InvalidEventError: On mixed aggregates, duplicate or non-contiguous
            sequence numbers.
    """
    if any(e.aggregate_id != aggregate_id for e in events):
        raise InvalidEventError(
            f"all events in a batch must belong to aggregate {aggregate_id!r}"
        )

    ordered = sorted(events, key=lambda e: e.aggregate_sequence_number)
    numbers = [e.aggregate_sequence_number for e in ordered]
    if numbers != list(range(numbers[0], numbers[0] + len(numbers))):
        raise InvalidEventError("aggregate sequence numbers in a batch must be contiguous")
    return ordered


# --- Streaming cursor ---


class EventStream(abc.ABC):
    """Pull-based, single-pass sequence of event batches for one aggregate."""

    @property
    @abc.abstractmethod
    def exhausted(self) -> bool:
        """True once no further batch will be produced."""

    @abc.abstractmethod
    async def next_batch(self) -> Sequence[CommittedEvent] | None:
        """Fetch the next non-empty batch, or None at the end of the sequence."""

    def __aiter__(self) -> EventStream:
        return self

    async def __anext__(self) -> Sequence[CommittedEvent]:
        batch = await self.next_batch()
        if batch is None:
            raise StopAsyncIteration
        return batch


class BatchedEventStream(EventStream):
    """Finite-state cursor over a ranked window of an aggregate's events.

    State is `offset` (rows already delivered) and `exhausted`. Each step asks
    `_fetch_window` for the rows ranked `(offset, offset + batch_size]`; a batch
    shorter than `batch_size` is the last one.
    """

    def __init__(
        self, aggregate_id: str, from_sequence_number: int, batch_size: int
    ) -> None:
        if from_sequence_number < 1:
            raise ValueError("from_sequence_number must be >= 1")
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.aggregate_id = aggregate_id
        self.from_sequence_number = from_sequence_number
        self.batch_size = batch_size
        self.offset = 0
        self._exhausted = False

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    async def next_batch(self) -> Sequence[CommittedEvent] | None:
        if self._exhausted:
            return None

        batch = await self._fetch_window(self.offset, self.batch_size)

        self.offset += self.batch_size
        self._exhausted = len(batch) < self.batch_size

        return batch or None

    @abc.abstractmethod
    async def _fetch_window(
        self, start_row: int, max_rows: int
    ) -> Sequence[CommittedEvent]:
        """Return the rows ranked `(start_row, start_row + max_rows]`, ascending."""


# --- Event Persistence Interface ---


class EventPersistence(abc.ABC):
    """An abstract base class for event persistence."""

    @property
    @abc.abstractmethod
    def prefer_streaming(self) -> bool:
        """Whether callers should read aggregates through `open_stream`."""

    @abc.abstractmethod
    async def commit_events(
        self, aggregate_id: str, serialized_events: Sequence[SerializedEvent]
    ) -> Sequence[CommittedEvent]:
        """Persist one aggregate's batch atomically.

        Raises:
            InvalidEventError: mixed aggregates or non-contiguous sequence numbers.
            OptimisticConcurrencyError: the batch collides with, or does not
                continue, the aggregate's committed sequence numbers.
            PersistenceError: any other storage failure.

        Returns:
            The committed events, with `global_sequence_number` populated, in
            the **same order** as provided. Empty input returns an empty list.
        """

    @abc.abstractmethod
    async def load_committed_events(
        self, aggregate_id: str, from_sequence_number: int = 1
    ) -> Sequence[CommittedEvent]:
        """Load an aggregate's events with sequence number >= `from_sequence_number`.

        Raises:
            ValueError: if from_sequence_number < 1.
            PersistenceError: on storage failure.
        """

    @abc.abstractmethod
    async def load_all_committed_events(
        self, global_position: GlobalPosition, page_size: int
    ) -> AllCommittedEventsPage:
        """Load the page `[start, start + page_size]` of the global order.

        Raises:
            ValueError: if page_size < 1.
            PersistenceError: on storage failure.
        """

    @abc.abstractmethod
    def open_stream(
        self,
        aggregate_id: str,
        from_sequence_number: int = 1,
        batch_size: int | None = None,
    ) -> EventStream:
        """Open a bounded-memory cursor over an aggregate's events.

        No I/O happens until the first `next_batch()`.
        """

    @abc.abstractmethod
    async def delete_events(self, aggregate_id: str) -> None:
        """Remove every event of the aggregate. Unknown aggregates are a no-op."""

    @abc.abstractmethod
    async def import_events(
        self, batches: AsyncIterable[Sequence[SerializedEvent]]
    ) -> int:
        """Bulk-load externally produced batches; returns the number of events written.

        Bypasses optimistic concurrency checks; meant for trusted migrations.
        """
