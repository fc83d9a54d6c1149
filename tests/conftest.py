import pytest_asyncio

from geosnap.database import Database
from geosnap.services.favorites import FavoriteToggle
from geosnap.services.record_store import RecordStore
from geosnap.services.schema_manager import SchemaManager

MEMORY_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def database():
    db = Database(MEMORY_URL)
    await db.open()
    await SchemaManager(db).initialize()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def store(database):
    # lowest bcrypt cost keeps the suite fast
    return RecordStore(database, bcrypt_rounds=4)


@pytest_asyncio.fixture
async def toggle(store):
    return FavoriteToggle(store)


@pytest_asyncio.fixture
async def user_id(store):
    return await store.create_user("Ana", "ana@x.com", "pw", "1990-01-01")
