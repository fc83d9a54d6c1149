import asyncio

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from geosnap.database import Database
from geosnap.models.favorite import Favorite
from geosnap.services.favorites import FavoriteState, FavoriteToggle
from geosnap.services.record_store import RecordStore
from geosnap.services.schema_manager import SchemaManager
from geosnap.utils.exceptions import ConstraintViolation


async def _count(database, user_id: int, photo_id: int) -> int:
    async with database.session() as session:
        result = await session.execute(
            select(func.count())
            .select_from(Favorite)
            .where(Favorite.user_id == user_id, Favorite.photo_id == photo_id)
        )
        return result.scalar_one()


@pytest_asyncio.fixture
async def five_photos(store, user_id):
    return [await store.create_photo(user_id, f"file:///{i}.jpg") for i in range(1, 6)]


@pytest.mark.asyncio
async def test_add_favorite_twice_keeps_one_row(store, database, user_id, five_photos):
    assert await store.add_favorite(user_id, 5) is True
    assert await store.add_favorite(user_id, 5) is False
    assert await _count(database, user_id, 5) == 1


@pytest.mark.asyncio
async def test_add_then_toggle(store, toggle, user_id, five_photos):
    await store.add_favorite(1, 5)
    assert await store.is_favorite(1, 5) is True

    assert await toggle.toggle(1, 5) is False
    assert await store.is_favorite(1, 5) is False


@pytest.mark.asyncio
async def test_toggle_twice_restores_state(toggle, user_id, five_photos):
    assert await toggle.state(user_id, 3) is FavoriteState.NOT_FAVORITED
    assert await toggle.toggle(user_id, 3) is True
    assert await toggle.state(user_id, 3) is FavoriteState.FAVORITED
    assert await toggle.toggle(user_id, 3) is False
    assert await toggle.state(user_id, 3) is FavoriteState.NOT_FAVORITED


@pytest.mark.asyncio
async def test_remove_favorite(store, user_id, five_photos):
    assert await store.remove_favorite(user_id, 2) is False
    await store.add_favorite(user_id, 2)
    assert await store.remove_favorite(user_id, 2) is True
    assert await store.is_favorite(user_id, 2) is False


@pytest.mark.asyncio
async def test_favorites_are_per_user(store, user_id, five_photos):
    other = await store.create_user("Bia", "bia@x.com", "pw", "1992-03-03")
    await store.add_favorite(other, 4)
    assert await store.is_favorite(other, 4) is True
    assert await store.is_favorite(user_id, 4) is False


@pytest.mark.asyncio
async def test_favorite_unknown_photo_violates_constraint(store, user_id):
    with pytest.raises(ConstraintViolation):
        await store.add_favorite(user_id, 777)


@pytest.mark.asyncio
async def test_concurrent_toggles_never_duplicate_rows(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'geosnap.sqlite3'}")
    await db.open()
    await SchemaManager(db).initialize()
    store = RecordStore(db, bcrypt_rounds=4)
    user_id = await store.create_user("Ana", "ana@x.com", "pw", "1990-01-01")
    photo_id = await store.create_photo(user_id, "file:///1.jpg")
    toggle = FavoriteToggle(store)

    await asyncio.gather(*(toggle.toggle(user_id, photo_id) for _ in range(6)))
    await asyncio.gather(*(store.add_favorite(user_id, photo_id) for _ in range(6)))

    assert await _count(db, user_id, photo_id) == 1
    await db.close()
