"""Portable SQLAlchemy column types for annals."""

from __future__ import annotations

from sqlalchemy import BigInteger, Integer

__all__ = ["BIGINT_PK"]

# SQLite only auto-assigns (and, with AUTOINCREMENT, never reuses) row ids for
# a column declared exactly INTEGER PRIMARY KEY.
BIGINT_PK = BigInteger().with_variant(Integer(), "sqlite")
