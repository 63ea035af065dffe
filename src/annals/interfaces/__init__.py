"""Interfaces (application boundary) for annals.

Defines framework-free contracts: the event persistence port, the streaming
cursor, DTOs and the event store error hierarchy. No SQLAlchemy here.

Dependency rule: this package is independent—do not import from any other
`annals.*` modules. It may be imported by `annals.adapters`,
`annals.bootstrap` and `annals.entrypoints`.
"""
