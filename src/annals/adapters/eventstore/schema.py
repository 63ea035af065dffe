"""Event table schema.

Defines the append-only ``events`` table used by annals to persist committed
domain events. Each row is a single event with a store-assigned global
sequence number and a caller-assigned per-aggregate sequence number.


Constraints (enforced here):

| Constraint                                        | Purpose                            |
|---------------------------------------------------|------------------------------------|
| PK(global_sequence_number), identity/autoincrement | total order, never reused          |
| UNIQUE(aggregate_id, aggregate_sequence_number)   | per-aggregate optimistic concurrency |
| CHECK(aggregate_sequence_number >= 1)             | sequences start at 1               |


Immutability (no UPDATE) is enforced by a trigger installed in migrations.
Whole-aggregate DELETE stays allowed.
"""

from __future__ import annotations

from sqlalchemy import (
    CheckConstraint,
    Column,
    Identity,
    Index,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
    Uuid,
)

from annals.adapters.db.metadata import metadata
from annals.adapters.db.sa_types import BIGINT_PK

__all__ = ["events", "SEQUENCE_CONFLICT_COLUMNS"]

#: Columns of the unique constraint that signals an optimistic concurrency conflict.
SEQUENCE_CONFLICT_COLUMNS = ("aggregate_id", "aggregate_sequence_number")

events = Table(
    "events",
    metadata,
    # Portable auto-increment primary key:
    # - Postgres: BIGINT IDENTITY
    # - SQLite: INTEGER PRIMARY KEY AUTOINCREMENT (ids of deleted rows are not reused)
    Column(
        "global_sequence_number",
        BIGINT_PK,
        Identity(start=1),
        nullable=False,
        primary_key=True,
        comment="Global, monotonically increasing sequence across all aggregates.",
    ),
    Column(
        "batch_id",
        Uuid(),
        nullable=False,
        comment="Groups events committed together (diagnostics only).",
    ),
    Column(
        "aggregate_id",
        String(255),
        nullable=False,
        comment="Owning aggregate stream identifier.",
    ),
    Column(
        "aggregate_name",
        String(255),
        nullable=False,
        comment="Aggregate type discriminator.",
    ),
    Column(
        "data",
        Text,
        nullable=False,
        comment="Serialized event payload.",
    ),
    Column(
        "metadata",
        Text,
        nullable=False,
        comment="Serialized event metadata.",
    ),
    Column(
        "aggregate_sequence_number",
        Integer,
        nullable=False,
        comment="Per-aggregate sequence (starts at 1); used for optimistic concurrency.",
    ),
    UniqueConstraint(*SEQUENCE_CONFLICT_COLUMNS),
    CheckConstraint(
        "aggregate_sequence_number >= 1", name="positive_aggregate_sequence_number"
    ),
    Index(None, "aggregate_name"),
    comment="Append-only event log. One row per committed event.",
    sqlite_autoincrement=True,
)
