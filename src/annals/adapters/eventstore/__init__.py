"""Event persistence adapters and the `events` table definition."""
