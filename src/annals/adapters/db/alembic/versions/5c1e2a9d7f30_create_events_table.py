"""Create events table

Revision ID: 5c1e2a9d7f30
Revises:
Create Date: 2026-10-17

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

from annals.adapters.db.dialects import DialectName
from annals.adapters.db.sa_types import BIGINT_PK

# deal with alembic stuff
# pylint: disable=no-member

# revision identifiers, used by Alembic.
revision: str = "5c1e2a9d7f30"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade schema."""
    dialect = DialectName.from_sqlalchemy(op.get_context())

    op.create_table(
        "events",
        sa.Column(
            "global_sequence_number",
            BIGINT_PK,
            sa.Identity(always=False, start=1),
            nullable=False,
            comment="Global, monotonically increasing sequence across all aggregates.",
        ),
        sa.Column(
            "batch_id",
            sa.Uuid(),
            nullable=False,
            comment="Groups events committed together (diagnostics only).",
        ),
        sa.Column(
            "aggregate_id",
            sa.String(length=255),
            nullable=False,
            comment="Owning aggregate stream identifier.",
        ),
        sa.Column(
            "aggregate_name",
            sa.String(length=255),
            nullable=False,
            comment="Aggregate type discriminator.",
        ),
        sa.Column(
            "data",
            sa.Text(),
            nullable=False,
            comment="Serialized event payload.",
        ),
        sa.Column(
            "metadata",
            sa.Text(),
            nullable=False,
            comment="Serialized event metadata.",
        ),
        sa.Column(
            "aggregate_sequence_number",
            sa.Integer(),
            nullable=False,
            comment="Per-aggregate sequence (starts at 1); used for optimistic concurrency.",
        ),
        sa.CheckConstraint(
            "aggregate_sequence_number >= 1",
            name=op.f("ck_events_positive_aggregate_sequence_number"),
        ),
        sa.PrimaryKeyConstraint("global_sequence_number", name=op.f("pk_events")),
        sa.UniqueConstraint(
            "aggregate_id",
            "aggregate_sequence_number",
            name=op.f("uq_events_aggregate_id_aggregate_sequence_number"),
        ),
        comment="Append-only event log. One row per committed event.",
        sqlite_autoincrement=True,
    )
    op.create_index(
        op.f("ix_events_events_aggregate_name"),
        "events",
        ["aggregate_name"],
        unique=False,
    )

    # ---- IMMUTABILITY (no UPDATE; whole-aggregate DELETE is allowed) ----
    if dialect is DialectName.POSTGRES:
        op.execute(
            """
            CREATE OR REPLACE FUNCTION events_forbid_update() RETURNS trigger
            LANGUAGE plpgsql AS $$
            BEGIN
              RAISE EXCEPTION 'events are immutable; % not allowed', TG_OP
              USING ERRCODE = '0A000'; -- feature_not_supported
            END;
            $$;
            """
        )
        op.execute(
            """
            CREATE TRIGGER tr_events_immutable
            BEFORE UPDATE ON events
            FOR EACH ROW
            EXECUTE FUNCTION events_forbid_update();
            """
        )
    else:
        op.execute(
            """
            CREATE TRIGGER tr_events_no_update
            BEFORE UPDATE ON events
            BEGIN
              SELECT RAISE(ABORT, 'events are immutable; UPDATE not allowed');
            END;
            """
        )


def downgrade() -> None:
    """Downgrade schema."""
    dialect = DialectName.from_sqlalchemy(op.get_context())

    if dialect is DialectName.POSTGRES:
        op.execute("DROP TRIGGER IF EXISTS tr_events_immutable ON events;")
        op.execute("DROP FUNCTION IF EXISTS events_forbid_update();")
    else:
        op.execute("DROP TRIGGER IF EXISTS tr_events_no_update;")

    op.drop_index(op.f("ix_events_events_aggregate_name"), table_name="events")
    op.drop_table("events")
