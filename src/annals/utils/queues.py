"""Adapt an `asyncio.Queue` fed by a producer into an async iterator.

Bulk imports drain a sequence of batches. Producers that push batches into a
bounded queue get backpressure for free; `iter_queue` turns that queue into
the `AsyncIterable` the importer consumes.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import TypeVar

T = TypeVar("T")

#: Pushed by the producer to signal there are no more items.
END_OF_STREAM = None


async def iter_queue(queue: asyncio.Queue[T | None]) -> AsyncIterator[T]:
    """Yield queue items until the producer puts `END_OF_STREAM`.

    Each item is marked done once the consumer resumes, so producers may
    `await queue.join()`.

    Args:
        queue: Queue the producer writes items (and finally `None`) to.

    Yields:
        Items in the order they were put.
    """
    while True:
        item = await queue.get()
        try:
            if item is END_OF_STREAM:
                return
            yield item
        finally:
            queue.task_done()
