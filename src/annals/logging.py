"""Log sinks for the annals command line.

Library modules only call ``logging.getLogger(__name__)``. The ``annals``
command attaches two sinks to the root logger: a Rich console on stderr and a
flight recorder that keeps recent records in memory and writes them to a file
once a WARNING shows up.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import MemoryHandler
from pathlib import Path

import aiosqlite
import sqlalchemy
from rich.console import Console
from rich.logging import RichHandler

PROJECT_PREFIX = "annals"

CONSOLE_FORMAT = "%(prefix)s %(message)s"
DEBUG_CONSOLE_FORMAT = "%(asctime)s %(name)s: %(message)s"
RECORDER_FORMAT = (
    "[%(asctime)s] [%(process)d] %(levelname)s %(name)s:%(lineno)d: %(message)s"
)


class ThirdPartyPrefixFilter(logging.Filter):  # pylint: disable=too-few-public-methods
    """Prefix records of other libraries with ``[library]``; never drops a record."""

    def filter(self, record: logging.LogRecord) -> bool:
        top = record.name.split(".", 1)[0]
        record.prefix = "" if top == PROJECT_PREFIX else f"[{top}]"
        return True


def config_console_handler(
    level: int = logging.INFO, debug_mode: bool = False, color: bool = True
) -> RichHandler:
    """Build the stderr console handler.

    In debug mode everything down to DEBUG is shown, with timestamps, logger
    names and source paths; otherwise foreign records carry a short prefix.
    """
    handler = RichHandler(
        level=logging.DEBUG if debug_mode else level,
        console=Console(color_system="auto" if color else None, stderr=True),
        rich_tracebacks=True,
        show_time=False,
        show_path=debug_mode,
    )
    if debug_mode:
        handler.setFormatter(logging.Formatter(DEBUG_CONSOLE_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        handler.addFilter(ThirdPartyPrefixFilter())
    return handler


def config_flight_recorder(
    path: Path, capacity: int = 2000, flush_on_close: bool = False
) -> MemoryHandler:
    """Buffer up to `capacity` records and dump them to `path` on a WARNING.

    With `flush_on_close` the buffer is also written when logging shuts down,
    even if nothing went wrong.
    """
    target = logging.FileHandler(path, mode="w", encoding="utf-8", delay=True)
    target.setFormatter(logging.Formatter(RECORDER_FORMAT))
    return MemoryHandler(
        capacity=capacity,
        flushLevel=logging.WARNING,
        target=target,
        flushOnClose=flush_on_close,
    )


def log_startup(  # pylint: disable=too-many-arguments
    logger: logging.Logger,
    *,
    app_version: str,
    level: int,
    handlers: list[logging.Handler],
    log_path: Path | None,
    flight_recorder: bool,
    logger_levels: dict[str, int],
) -> None:
    """Log the one-line startup summary, then versions and sinks at DEBUG."""
    logger.info(
        "annals %s (console=%s, flight-recorder=%s)",
        app_version,
        logging.getLevelName(level),
        "ON" if flight_recorder else "OFF",
    )
    logger.debug(
        "Python %s, SQLAlchemy %s, aiosqlite %s",
        sys.version.split()[0],
        sqlalchemy.__version__,
        aiosqlite.__version__,
    )
    logger.debug("Handlers: %s", [type(h).__name__ for h in handlers])
    if flight_recorder:
        logger.debug("Flight recorder: %s", log_path or "<none>")
    logger.debug(
        "Per-logger overrides: %s",
        {name: logging.getLevelName(lvl) for name, lvl in logger_levels.items()},
    )
