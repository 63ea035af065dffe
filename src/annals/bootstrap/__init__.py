"""Bootstrap (composition root) for annals.

Assembles the event store at runtime: reads configuration, creates the async
engine, and wires it into the SQLAlchemy persistence adapter.

Import rules:
- Entry points import *this* package (not adapters directly).
- This package may import: `annals.adapters`, `annals.interfaces` and
  `annals.config`.
- Inner layers must not import `annals.bootstrap`.
"""

from .bootstrap import AppContainer, bootstrap, build_event_persistence

__all__ = ["AppContainer", "bootstrap", "build_event_persistence"]
