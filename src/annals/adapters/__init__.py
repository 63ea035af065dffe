"""Adapters (infrastructure) for annals.

Provide concrete implementations of the persistence port (SQLAlchemy and
in-memory), plus table mapping and related wiring (engines, metadata,
migrations).

Dependency rule: may import `annals.interfaces`; interfaces must not import
this package.
"""
