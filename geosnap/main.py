import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

from geosnap.config import Settings, settings as default_settings
from geosnap.database import Database
from geosnap.schemas.album import Album, UserStats
from geosnap.services.aggregation import compute_user_stats, group_into_albums
from geosnap.services.favorites import FavoriteToggle
from geosnap.services.record_store import RecordStore
from geosnap.services.schema_manager import SchemaManager

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@dataclass
class GeoSnap:
    """The wired data layer handed to the presentation code."""

    database: Database
    schema: SchemaManager
    store: RecordStore
    favorites: FavoriteToggle

    async def albums_for_user(self, user_id: int) -> list[Album]:
        return group_into_albums(await self.store.list_photos_by_user(user_id))

    async def user_stats(self, user_id: int) -> UserStats:
        return await compute_user_stats(self.store, user_id)


@asynccontextmanager
async def open_app(settings: Settings | None = None, database_url: str | None = None) -> AsyncIterator[GeoSnap]:
    """Open the database, initialize the schema once and yield the components.

    If schema initialization fails the database is closed and the
    ``InitializationError`` propagates; no store is ever created.
    """
    settings = settings or default_settings
    configure_logging(settings.log_level)

    database = Database(
        database_url or settings.database_url,
        echo=settings.database_echo,
        timeout=settings.database_timeout,
    )
    await database.open()
    try:
        schema = SchemaManager(database)
        await schema.initialize()
        store = RecordStore(database, bcrypt_rounds=settings.bcrypt_rounds)
        yield GeoSnap(database=database, schema=schema, store=store, favorites=FavoriteToggle(store))
    finally:
        await database.close()
