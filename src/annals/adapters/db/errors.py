"""Backend-neutral classification of SQLAlchemy integrity errors.

Drivers report uniqueness violations differently (SQLite:
``UNIQUE constraint failed: events.aggregate_id, events.aggregate_sequence_number``;
PostgreSQL: ``duplicate key value violates unique constraint
"uq_events_aggregate_id_aggregate_sequence_number"``). Both messages carry the
word "unique" and the constrained column names, which is what we match on
instead of a backend-specific error number.
"""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy.exc import IntegrityError

UNIQUE_KEYWORD = "unique"  # pragma: no mutate
EMPTY_STRING = ""  # pragma: no mutate


def integrity_error_message(integrity_error: IntegrityError) -> str:
    """Return the driver message of an IntegrityError, falling back to str()."""
    return (
        str(integrity_error.orig)
        if integrity_error.orig not in (None, EMPTY_STRING)
        else str(integrity_error)
    )


def is_unique_violation(integrity_error: IntegrityError, columns: Iterable[str]) -> bool:
    """Tell whether `integrity_error` is a uniqueness violation over `columns`.

    Args:
        integrity_error: The error raised by the driver.
        columns: Column names of the unique constraint of interest.

    Returns:
        bool: True if every keyword is found in the (lower-cased) message.
    """
    msg = integrity_error_message(integrity_error).lower()
    return all(kw in msg for kw in (UNIQUE_KEYWORD, *columns))
