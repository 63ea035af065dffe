"""Entrypoints (inbound adapters) for annals.

Expose the event store to the outside world through the command line. Parse
and validate inputs, call the persistence port, and present results.

Dependency rule: obtain concrete adapters through `annals.bootstrap`.
"""
