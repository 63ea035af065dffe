"""Defines the in-memory event persistence adapter package.

Non-durable twin of the SQLAlchemy adapter, used by tests and prototypes.
"""

from .eventstore import InMemoryEventPersistence, InMemoryEventStream

__all__ = [
    "InMemoryEventPersistence",
    "InMemoryEventStream",
]
