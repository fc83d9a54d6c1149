"""Table creation and forward-only schema migrations.

Migrations are an ordered list of idempotent "ensure X exists" steps. Each
step inspects the live schema and only issues DDL when something is missing,
so running the list against an up-to-date database is a no-op. Steps may add
columns, tables or indexes; they never drop or rename anything.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Callable

from sqlalchemy import inspect, text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from geosnap.database import Base, Database
from geosnap.utils.exceptions import InitializationError

logger = logging.getLogger(__name__)


def ensure_column(table: str, column: str, ddl_type: str) -> Callable[[Connection], bool]:
    def step(conn: Connection) -> bool:
        columns = {c["name"] for c in inspect(conn).get_columns(table)}
        if column in columns:
            return False
        logger.info("Adding %s column to %s table", column, table)
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {ddl_type}"))
        return True

    return step


def ensure_index(name: str, table: str, columns: list[str]) -> Callable[[Connection], bool]:
    def step(conn: Connection) -> bool:
        indexes = {i["name"] for i in inspect(conn).get_indexes(table)}
        if name in indexes:
            return False
        logger.info("Creating index %s on %s", name, table)
        conn.execute(text(f"CREATE INDEX IF NOT EXISTS {name} ON {table} ({', '.join(columns)})"))
        return True

    return step


@dataclass(frozen=True)
class Migration:
    version: int
    description: str
    apply: Callable[[Connection], bool]


MIGRATIONS: list[Migration] = [
    Migration(1, "users.profile_image", ensure_column("users", "profile_image", "TEXT")),
    Migration(2, "photos(user_id, taken_at) index", ensure_index("ix_photos_user_taken", "photos", ["user_id", "taken_at"])),
    Migration(3, "favorites(photo_id) index", ensure_index("ix_favorites_photo", "favorites", ["photo_id"])),
]

SCHEMA_VERSION = MIGRATIONS[-1].version


def _run_migrations(conn: Connection, migrations: list[Migration]) -> list[int]:
    current = schema_version(conn)
    applied = []
    for migration in migrations:
        if migration.apply(conn):
            applied.append(migration.version)
            logger.info("Migration %d applied: %s", migration.version, migration.description)

    target = max((m.version for m in migrations), default=current)
    if target > current:
        conn.exec_driver_sql(f"PRAGMA user_version = {int(target)}")
    return applied


def schema_version(conn: Connection) -> int:
    return conn.execute(text("PRAGMA user_version")).scalar() or 0


class SchemaManager:
    """Creates the base tables and brings older installations up to date.

    ``initialize()`` must complete before a ``RecordStore`` is used on the
    same database. It is safe to call more than once; calls after the first
    successful one return immediately, and concurrent calls are serialized.
    """

    def __init__(self, database: Database, migrations: list[Migration] | None = None):
        self.database = database
        self.migrations = MIGRATIONS if migrations is None else migrations
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        async with self._lock:
            if self.database.initialized:
                return
            if not self.database.is_open:
                raise InitializationError("Banco de dados não foi aberto")

            try:
                async with self.database.engine.begin() as conn:
                    from geosnap.models import user, photo, favorite  # noqa: F401
                    await conn.run_sync(Base.metadata.create_all)
                    await conn.run_sync(_run_migrations, self.migrations)
            except SQLAlchemyError as exc:
                logger.exception("Database initialization failed for %s", self.database.url)
                raise InitializationError(f"Falha ao inicializar o banco de dados: {exc}") from exc

            self.database.initialized = True
            logger.info(
                "Database initialized at schema version %d",
                max((m.version for m in self.migrations), default=0),
            )

    async def migrate(self) -> list[int]:
        """Apply pending migrations and return the versions that changed anything."""
        try:
            async with self.database.engine.begin() as conn:
                return await conn.run_sync(_run_migrations, self.migrations)
        except SQLAlchemyError as exc:
            logger.exception("Database migration failed for %s", self.database.url)
            raise InitializationError(f"Falha ao migrar o banco de dados: {exc}") from exc

    async def version(self) -> int:
        async with self.database.engine.connect() as conn:
            return await conn.run_sync(schema_version)
