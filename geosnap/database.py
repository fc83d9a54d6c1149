import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from sqlalchemy import event, make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from geosnap.config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def _is_memory(url: str) -> bool:
    database = make_url(url).database
    return not database or database == ":memory:" or "mode=memory" in url


def _set_sqlite_pragma(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Handle on the embedded SQLite database.

    Constructed explicitly by the application entry point (or by a test) and
    passed to the components that need it. ``open()`` creates the engine,
    ``close()`` disposes of it.
    """

    def __init__(self, url: str | None = None, echo: bool | None = None, timeout: float | None = None):
        self.url = url or settings.database_url
        self.echo = settings.database_echo if echo is None else echo
        self.timeout = settings.database_timeout if timeout is None else timeout
        self.initialized = False
        self._engine: AsyncEngine | None = None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database is not open")
        return self._engine

    async def open(self) -> None:
        if self._engine is not None:
            return

        engine_kwargs: dict = {"echo": self.echo, "connect_args": {"timeout": self.timeout}}
        if _is_memory(self.url):
            # every session must see the same in-memory database
            engine_kwargs["poolclass"] = StaticPool
        else:
            path = make_url(self.url).database
            if path:
                Path(path).parent.mkdir(parents=True, exist_ok=True)

        self._engine = create_async_engine(self.url, **engine_kwargs)
        event.listen(self._engine.sync_engine, "connect", _set_sqlite_pragma)
        self._sessionmaker = async_sessionmaker(self._engine, class_=AsyncSession, expire_on_commit=False)
        logger.debug("Opened database %s", self.url)

    async def close(self) -> None:
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._sessionmaker = None
        self.initialized = False
        logger.debug("Closed database %s", self.url)

    def session(self) -> AsyncSession:
        if self._sessionmaker is None:
            raise RuntimeError("Database is not open")
        return self._sessionmaker()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Session with a transaction that commits on success and rolls back on error."""
        async with self.session() as session:
            async with session.begin():
                yield session
