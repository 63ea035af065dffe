"""Alembic migration scripts for the annals event table (forward-only)."""
