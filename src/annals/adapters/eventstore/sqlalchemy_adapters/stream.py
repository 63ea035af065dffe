"""Streaming cursor over one aggregate's events, backed by SQLAlchemy.

Each step ranks the aggregate's matching rows with
``ROW_NUMBER() OVER (ORDER BY aggregate_sequence_number)`` and selects one
window of ranks, so the backend needs no server-side cursor and memory stays
bounded to a single batch. A pooled connection is only held while a step's
query runs.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from sqlalchemy import Select, func, select
from sqlalchemy.exc import DBAPIError

from annals.interfaces.eventstore import (
    BatchedEventStream,
    CommittedEvent,
    PersistenceError,
)

from ..schema import events

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)


def ranked_window_query(
    aggregate_id: str, from_sequence_number: int, start_row: int, max_rows: int
) -> Select:
    """Build the query returning ranks `(start_row, start_row + max_rows]`."""
    ranked = (
        select(
            events,
            func.row_number()
            .over(order_by=events.c.aggregate_sequence_number.asc())
            .label("event_rank"),
        )
        .where(events.c.aggregate_id == aggregate_id)
        .where(events.c.aggregate_sequence_number >= from_sequence_number)
        .subquery("events_with_rank")
    )

    return (
        select(*(ranked.c[column.name] for column in events.columns))
        .where(ranked.c.event_rank > start_row)
        .where(ranked.c.event_rank <= start_row + max_rows)
        .order_by(ranked.c.event_rank.asc())
    )


class SqlAlchemyEventStream(BatchedEventStream):
    """Resumable batch cursor; create a new one to re-read."""

    def __init__(
        self,
        engine: AsyncEngine,
        aggregate_id: str,
        from_sequence_number: int,
        batch_size: int,
    ) -> None:
        super().__init__(aggregate_id, from_sequence_number, batch_size)
        self.engine = engine

    async def _fetch_window(
        self, start_row: int, max_rows: int
    ) -> Sequence[CommittedEvent]:
        stmt = ranked_window_query(
            self.aggregate_id, self.from_sequence_number, start_row, max_rows
        )
        try:
            async with self.engine.connect() as connection:
                rows = (await connection.execute(stmt)).mappings().all()
        except DBAPIError as e:
            raise PersistenceError(str(e)) from e

        batch = [CommittedEvent(**row) for row in rows]
        logger.debug(
            "Loaded %d events in batch for aggregate '%s'. Continue? %s",
            len(batch),
            self.aggregate_id,
            len(batch) >= max_rows,
        )
        return batch
