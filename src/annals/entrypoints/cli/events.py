"""annals events CLI — import, inspect and delete committed events.

Events travel as JSON Lines, one object per event:

    {"aggregate_id": "order-1", "aggregate_name": "Order",
     "batch_id": "5b0f...", "data": "...", "metadata": "...",
     "aggregate_sequence_number": 1}

Dumps (``show``, ``page``) add ``global_sequence_number`` and go to **stdout**;
progress and the next global position go to **stderr**.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from dataclasses import asdict
from typing import IO, TYPE_CHECKING, Any, TypeVar
from uuid import UUID

import click
import click_extra as clickx

from annals import config
from annals.bootstrap import bootstrap
from annals.interfaces.eventstore import (
    CommittedEvent,
    EventStoreError,
    GlobalPosition,
    SerializedEvent,
)

from .db import get_url
from .helpers import success, warn

if TYPE_CHECKING:
    from annals.interfaces.eventstore import EventPersistence

logger = logging.getLogger(__name__)

T = TypeVar("T")


def parse_event_line(line: str, line_number: int) -> SerializedEvent:
    """Parse one JSON Lines record into a SerializedEvent.

    Raises:
        click.ClickException: If the line is not valid JSON or misses fields.
    """
    try:
        record = json.loads(line)
        return SerializedEvent(
            aggregate_id=record["aggregate_id"],
            aggregate_name=record["aggregate_name"],
            batch_id=UUID(str(record["batch_id"])),
            data=record["data"],
            metadata=record["metadata"],
            aggregate_sequence_number=int(record["aggregate_sequence_number"]),
        )
    except (ValueError, KeyError, TypeError, EventStoreError) as e:
        raise click.ClickException(f"line {line_number}: invalid event ({e})") from e


async def read_batches(
    lines: Iterable[str], batch_size: int
) -> AsyncIterator[list[SerializedEvent]]:
    """Group JSON Lines into batches of at most `batch_size` events."""
    batch: list[SerializedEvent] = []
    for line_number, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        batch.append(parse_event_line(line, line_number))
        if len(batch) >= batch_size:
            yield batch
            batch = []
    if batch:
        yield batch


def dump_event(event: CommittedEvent) -> str:
    """Render a committed event as one JSON line."""
    record: dict[str, Any] = asdict(event)
    record["batch_id"] = str(event.batch_id)
    return json.dumps(record, sort_keys=True)


def load_settings() -> config.EventStoreSettings:
    """Read the event store settings, reporting bad values as a ClickException."""
    try:
        return config.EventStoreSettings.from_env()
    except config.InvalidSettingError as e:
        raise click.ClickException(str(e)) from e


def run_with_store(action: Callable[[EventPersistence], Awaitable[T]]) -> T:
    """Bootstrap the store, run `action` on it, and dispose of the engine."""
    url = get_url()
    settings = load_settings()

    async def _run() -> T:
        container = bootstrap(url, settings)
        try:
            return await action(container.persistence)
        finally:
            await container.aclose()

    try:
        return asyncio.run(_run())
    except EventStoreError as e:
        logger.debug("Event store operation failed", exc_info=True)
        raise click.ClickException(f"{type(e).__name__}: {e}") from e


@click.group(cls=clickx.ExtraGroup)
def events() -> None:
    """Event store commands."""


@events.command(name="import")
@click.argument("source", type=click.File("r", encoding="utf-8"))
@click.option(
    "--batch-size",
    type=click.IntRange(min=1),
    default=None,
    help="Events per imported batch (defaults to ANNALS_STREAMING_BATCH_SIZE).",
)
def import_(source: IO[str], batch_size: int | None) -> None:
    """Bulk-import events from a JSON Lines file ('-' for stdin)."""

    size = batch_size or load_settings().streaming_batch_size

    async def _import(store: EventPersistence) -> int:
        return await store.import_events(read_batches(source, size))

    imported = run_with_store(_import)
    success(f"Imported {imported} events")


@events.command()
@click.argument("aggregate_id")
@click.option(
    "--from",
    "from_sequence_number",
    type=click.IntRange(min=1),
    default=1,
    show_default=True,
    help="First aggregate sequence number to show.",
)
def show(aggregate_id: str, from_sequence_number: int) -> None:
    """Print an aggregate's events as JSON Lines."""

    async def _show(store: EventPersistence) -> int:
        count = 0
        if store.prefer_streaming:
            async for batch in store.open_stream(aggregate_id, from_sequence_number):
                for event in batch:
                    click.echo(dump_event(event))
                count += len(batch)
        else:
            for event in await store.load_committed_events(
                aggregate_id, from_sequence_number
            ):
                click.echo(dump_event(event))
                count += 1
        return count

    if not run_with_store(_show):
        warn(f"No events for aggregate '{aggregate_id}'")


@events.command()
@click.option(
    "--position",
    type=click.IntRange(min=0),
    default=None,
    help="Global position to read from (defaults to the start).",
)
@click.option(
    "--page-size",
    type=click.IntRange(min=1),
    default=100,
    show_default=True,
    help="Width of the global sequence window.",
)
def page(position: int | None, page_size: int) -> None:
    """Print one page of the global event order as JSON Lines."""

    async def _page(store: EventPersistence) -> GlobalPosition:
        result = await store.load_all_committed_events(GlobalPosition(position), page_size)
        for event in result.events:
            click.echo(dump_event(event))
        return result.next_position

    next_position = run_with_store(_page)
    click.echo(f"next position: {next_position.offset}", err=True)


@events.command()
@click.argument("aggregate_id")
@click.option("--force", is_flag=True, help="Delete without confirmation.")
def delete(aggregate_id: str, force: bool) -> None:
    """Delete every event of an aggregate."""
    if not force:
        warn(f"This will permanently delete all events of aggregate '{aggregate_id}'.")
        click.confirm("Are you sure you want to proceed?", abort=True)

    async def _delete(store: EventPersistence) -> None:
        await store.delete_events(aggregate_id)

    run_with_store(_delete)
    success(f"Deleted aggregate '{aggregate_id}'")
