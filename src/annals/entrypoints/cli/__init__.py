"""Command-line interface for annals (``annals`` console script)."""
