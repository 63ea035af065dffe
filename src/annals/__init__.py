"""annals

An append-only event store persistence engine. It durably records domain
events produced by aggregates, assigns them a total global order, and serves
per-aggregate, global catch-up and streaming reads.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
