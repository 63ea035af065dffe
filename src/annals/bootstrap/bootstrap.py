"""Wire the async engine and settings into the event persistence adapter."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from annals import config
from annals.adapters.db.engine import make_engine
from annals.adapters.eventstore.sqlalchemy_adapters import SqlAlchemyEventPersistence

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from annals.interfaces.eventstore import EventPersistence


@dataclass(frozen=True)
class AppContainer:
    """A class to hold application wiring constants."""

    engine: AsyncEngine
    persistence: EventPersistence

    async def aclose(self) -> None:
        """Release pooled connections."""
        await self.engine.dispose()


def build_event_persistence(
    engine: AsyncEngine, settings: config.EventStoreSettings | None = None
) -> SqlAlchemyEventPersistence:
    """Build the SQLAlchemy event persistence for an engine."""
    settings = settings or config.EventStoreSettings()
    return SqlAlchemyEventPersistence(
        engine,
        streaming_batch_size=settings.streaming_batch_size,
        prefer_streaming=settings.prefer_streaming,
    )


def bootstrap(
    url: str | None = None, settings: config.EventStoreSettings | None = None
) -> AppContainer:
    """Bootstrap the event store from arguments, falling back to the environment."""
    engine = make_engine(url or config.get_db_url())
    persistence = build_event_persistence(
        engine, settings or config.EventStoreSettings.from_env()
    )
    return AppContainer(engine=engine, persistence=persistence)
