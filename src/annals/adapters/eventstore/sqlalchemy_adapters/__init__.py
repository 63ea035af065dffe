"""Defines the SQLAlchemy event persistence adapter package.

The SQLAlchemy adapter stores committed events in a relational table
(SQLite or PostgreSQL through async drivers) and reads them back per
aggregate, per global page, or as a streaming cursor.
"""

from .eventstore import SqlAlchemyEventPersistence
from .stream import SqlAlchemyEventStream

__all__ = [
    "SqlAlchemyEventPersistence",
    "SqlAlchemyEventStream",
]
