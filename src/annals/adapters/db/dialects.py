"""Database backends annals can store events in.

Migrations and the Alembic environment branch on the backend (identity
columns, trigger syntax, batch ALTER emulation); they ask `DialectName`
rather than comparing raw dialect strings.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

#: Spellings accepted for PostgreSQL besides its SQLAlchemy name.
POSTGRES_ALIASES = {"postgres", "pg"}


class UnsupportedDialect(Exception):
    """The backend is neither SQLite nor PostgreSQL."""


class DialectName(str, Enum):
    """SQLAlchemy dialect names of the supported backends."""

    POSTGRES = "postgresql"
    SQLITE = "sqlite"

    @classmethod
    def from_string(cls, name: str | None) -> DialectName:
        """Map names such as 'sqlite+aiosqlite' or 'postgres' to a member.

        Raises:
            UnsupportedDialect: for empty or unknown names.
        """
        base = (name or "").strip().lower().split("+", 1)[0]
        if base in POSTGRES_ALIASES:
            return cls.POSTGRES
        try:
            return cls(base)
        except ValueError as e:
            raise UnsupportedDialect(f"Unsupported dialect: {name!r}") from e

    @classmethod
    def from_sqlalchemy(cls, bind: Any) -> DialectName:
        """Backend of an engine, connection or Alembic migration context.

        Raises:
            UnsupportedDialect: if `bind` has no dialect or an unknown one.
        """
        dialect = getattr(bind, "dialect", None)
        if dialect is None:
            raise UnsupportedDialect(f"{type(bind).__name__} has no dialect")
        return cls.from_string(dialect.name)
