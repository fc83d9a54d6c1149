import pytest
from sqlalchemy import func, select

from geosnap.models.user import User
from geosnap.utils.exceptions import ConstraintViolation, DuplicateEmail, InvalidInput


@pytest.mark.asyncio
async def test_create_user_returns_first_id(store):
    user_id = await store.create_user("Ana", "ana@x.com", "pw", "1990-01-01")
    assert user_id == 1


@pytest.mark.asyncio
async def test_duplicate_email_is_rejected(store, user_id):
    with pytest.raises(DuplicateEmail) as exc_info:
        await store.create_user("Outra Ana", "ana@x.com", "outra", "1991-02-02")

    assert isinstance(exc_info.value, ConstraintViolation)
    assert exc_info.value.email == "ana@x.com"


@pytest.mark.asyncio
async def test_distinct_emails_stay_unique(store, database):
    emails = ["a@x.com", "b@x.com", "c@x.com"]
    for i, email in enumerate(emails):
        await store.create_user(f"User {i}", email, "pw", "2000-01-01")
    with pytest.raises(ConstraintViolation):
        await store.create_user("Again", "b@x.com", "pw", "2000-01-01")

    async with database.session() as session:
        result = await session.execute(select(User.email, func.count()).group_by(User.email))
        counts = dict(result.all())
    assert counts == {email: 1 for email in emails}


@pytest.mark.asyncio
async def test_password_is_not_stored_in_plain_text(store, database, user_id):
    async with database.session() as session:
        user = await session.get(User, user_id)
    assert user.password != "pw"
    assert user.password.startswith("$2")


@pytest.mark.asyncio
async def test_authenticate_user(store, user_id):
    user = await store.authenticate_user("ana@x.com", "pw")
    assert user is not None
    assert user.id == user_id
    assert user.name == "Ana"
    assert user.birth_date == "1990-01-01"
    assert user.created_at is not None
    assert not hasattr(user, "password")


@pytest.mark.asyncio
async def test_authenticate_user_wrong_password(store, user_id):
    assert await store.authenticate_user("ana@x.com", "errada") is None


@pytest.mark.asyncio
async def test_authenticate_unknown_email(store):
    assert await store.authenticate_user("ninguem@x.com", "pw") is None


@pytest.mark.asyncio
async def test_authenticate_upgrades_legacy_plain_text_credential(store, database):
    async with database.transaction() as session:
        legacy = User(name="Bia", email="bia@x.com", password="antiga", birth_date="1985-05-05")
        session.add(legacy)
        await session.flush()
        legacy_id = legacy.id

    assert await store.authenticate_user("bia@x.com", "errada") is None
    user = await store.authenticate_user("bia@x.com", "antiga")
    assert user is not None and user.id == legacy_id

    async with database.session() as session:
        stored = await session.get(User, legacy_id)
    assert stored.password.startswith("$2")
    assert await store.authenticate_user("bia@x.com", "antiga") is not None


@pytest.mark.asyncio
async def test_update_user(store, user_id):
    assert await store.update_user(user_id, "Ana Maria") is True
    user = await store.get_user(user_id)
    assert user.name == "Ana Maria"


@pytest.mark.asyncio
async def test_update_missing_user_reports_false(store):
    assert await store.update_user(999, "Ninguém") is False
    assert await store.update_user_profile_image(999, "file:///x.jpg") is False


@pytest.mark.asyncio
async def test_update_user_rejects_blank_name(store, user_id):
    with pytest.raises(InvalidInput):
        await store.update_user(user_id, "  ")


@pytest.mark.asyncio
async def test_profile_image(store, user_id):
    assert await store.get_user_profile_image(user_id) is None
    assert await store.update_user_profile_image(user_id, "file:///perfil.jpg") is True
    assert await store.get_user_profile_image(user_id) == "file:///perfil.jpg"
    assert (await store.get_user(user_id)).profile_image == "file:///perfil.jpg"


@pytest.mark.asyncio
async def test_get_missing_user(store):
    assert await store.get_user(42) is None
    assert await store.get_user_profile_image(42) is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "name, email, password",
    [("", "ana@x.com", "pw"), ("Ana", "sem-arroba", "pw"), ("Ana", "ana@x.com", "")],
)
async def test_create_user_validates_input(store, name, email, password):
    with pytest.raises(InvalidInput):
        await store.create_user(name, email, password, "1990-01-01")


@pytest.mark.asyncio
async def test_create_user_rejects_password_over_bcrypt_limit(store):
    with pytest.raises(InvalidInput):
        await store.create_user("Ana", "ana@x.com", "x" * 100, "1990-01-01")
    # 36 two-byte characters is exactly 72 bytes
    assert await store.create_user("Ana", "ana@x.com", "é" * 36, "1990-01-01") == 1
    with pytest.raises(InvalidInput):
        await store.create_user("Bia", "bia@x.com", "é" * 37, "1990-01-01")


@pytest.mark.asyncio
async def test_authenticate_with_overlong_password_returns_none(store, user_id):
    assert await store.authenticate_user("ana@x.com", "y" * 100) is None
    assert await store.authenticate_user("ana@x.com", "pw") is not None
