"""CRUD over users, photos and favorites.

Every method opens its own session. Writes that touch more than one table
run inside a single transaction. Failures are never swallowed: integrity
errors become ``ConstraintViolation`` and any other engine failure becomes
``StorageError``. "Not found" is reported as ``None``/``False``.
"""
import hmac
import logging
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

import bcrypt
from pydantic import BaseModel, ValidationError
from sqlalchemy import and_, delete, distinct, func, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from geosnap.config import settings
from geosnap.database import Database
from geosnap.models.favorite import Favorite
from geosnap.models.photo import Photo
from geosnap.models.user import User
from geosnap.schemas.photo import FeedItem, PhotoCreate, PhotoRecord
from geosnap.schemas.user import MAX_PASSWORD_BYTES, UserCreate, UserRecord
from geosnap.utils.exceptions import (
    AppException,
    ConstraintViolation,
    DuplicateEmail,
    InitializationError,
    InvalidInput,
    StorageError,
)

logger = logging.getLogger(__name__)


@contextmanager
def _storage_errors(action: str):
    try:
        yield
    except AppException:
        raise
    except IntegrityError as exc:
        raise ConstraintViolation(f"Restrição violada ao {action}: {exc.orig}") from exc
    except SQLAlchemyError as exc:
        logger.exception("Storage failure while trying to %s", action)
        raise StorageError(f"Erro ao {action}", cause=exc) from exc


def _validate(schema: type[BaseModel], **values) -> BaseModel:
    try:
        return schema(**values)
    except ValidationError as exc:
        raise InvalidInput(f"Dados inválidos: {exc.errors()}") from exc


def _is_bcrypt_hash(value: str) -> bool:
    return value.startswith(("$2a$", "$2b$", "$2y$"))


def _timestamp(value: datetime | str | None) -> str:
    """Normalize to UTC ISO-8601 so string order matches time order."""
    if value is None:
        value = datetime.now(timezone.utc)
    if isinstance(value, str):
        parsed = _parse_timestamp(value)
        if parsed is None:
            return value
        value = parsed
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="seconds")


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        logger.warning("Unparseable timestamp: %s", value)
        return None
    if parsed.tzinfo is None:
        # CURRENT_TIMESTAMP defaults are UTC
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _photo_record(photo: Photo, is_favorite: bool | None = None) -> PhotoRecord:
    record = PhotoRecord.model_validate(photo)
    if is_favorite is not None:
        record = record.model_copy(update={"is_favorite": is_favorite})
    return record


class RecordStore:
    def __init__(self, database: Database, bcrypt_rounds: int | None = None):
        if not database.initialized:
            raise InitializationError("O esquema do banco de dados não foi inicializado")
        self.database = database
        self.bcrypt_rounds = settings.bcrypt_rounds if bcrypt_rounds is None else bcrypt_rounds

    def _hash_password(self, password: str) -> str:
        return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=self.bcrypt_rounds)).decode()

    # -- users --------------------------------------------------------------

    async def create_user(self, name: str, email: str, password: str, birth_date: str) -> int:
        payload = _validate(UserCreate, name=name, email=email, password=password, birth_date=birth_date)
        password_hash = self._hash_password(payload.password)

        with _storage_errors("criar usuário"):
            try:
                async with self.database.transaction() as session:
                    user = User(
                        name=payload.name,
                        email=payload.email,
                        password=password_hash,
                        birth_date=payload.birth_date,
                    )
                    session.add(user)
                    await session.flush()
                    user_id = user.id
            except IntegrityError as exc:
                if "users.email" in str(exc.orig):
                    raise DuplicateEmail(payload.email) from exc
                raise

        logger.info("Created user %d", user_id)
        return user_id

    async def authenticate_user(self, email: str, password: str) -> UserRecord | None:
        with _storage_errors("autenticar usuário"):
            async with self.database.session() as session:
                result = await session.execute(
                    select(User).where(User.email == email).order_by(User.id).limit(1)
                )
                user = result.scalars().first()

                if user is None:
                    return None

                encoded = password.encode()
                if _is_bcrypt_hash(user.password):
                    if len(encoded) > MAX_PASSWORD_BYTES:
                        return None
                    if not bcrypt.checkpw(encoded, user.password.encode()):
                        return None
                else:
                    # rows written before credentials were hashed
                    if not hmac.compare_digest(user.password.encode(), encoded):
                        return None
                    if len(encoded) > MAX_PASSWORD_BYTES:
                        return UserRecord.model_validate(user)
                    logger.info("Upgrading stored credential for user %d to bcrypt", user.id)
                    user.password = self._hash_password(password)
                    await session.commit()

                return UserRecord.model_validate(user)

    async def get_user(self, user_id: int) -> UserRecord | None:
        with _storage_errors("buscar usuário"):
            async with self.database.session() as session:
                user = await session.get(User, user_id)
                return UserRecord.model_validate(user) if user else None

    async def get_user_profile_image(self, user_id: int) -> str | None:
        with _storage_errors("buscar foto de perfil"):
            async with self.database.session() as session:
                result = await session.execute(select(User.profile_image).where(User.id == user_id))
                return result.scalar_one_or_none()

    async def update_user(self, user_id: int, name: str) -> bool:
        if not name or not name.strip():
            raise InvalidInput("O nome não pode ser vazio")
        with _storage_errors("atualizar usuário"):
            async with self.database.transaction() as session:
                result = await session.execute(update(User).where(User.id == user_id).values(name=name))
                return result.rowcount > 0

    async def update_user_profile_image(self, user_id: int, image_ref: str | None) -> bool:
        with _storage_errors("atualizar foto de perfil"):
            async with self.database.transaction() as session:
                result = await session.execute(
                    update(User).where(User.id == user_id).values(profile_image=image_ref)
                )
                return result.rowcount > 0

    # -- photos -------------------------------------------------------------

    async def create_photo(
        self,
        user_id: int,
        uri: str,
        comment: str | None = None,
        latitude: float | None = None,
        longitude: float | None = None,
        location_name: str | None = None,
        taken_at: datetime | str | None = None,
    ) -> int:
        payload = _validate(
            PhotoCreate,
            user_id=user_id,
            uri=uri,
            comment=comment,
            latitude=latitude,
            longitude=longitude,
            location_name=location_name,
            taken_at=_timestamp(taken_at),
        )
        if (payload.latitude is None) != (payload.longitude is None):
            logger.warning("Photo for user %d saved with an incomplete coordinate pair", payload.user_id)

        with _storage_errors("salvar foto"):
            async with self.database.transaction() as session:
                photo = Photo(**payload.model_dump())
                session.add(photo)
                await session.flush()
                photo_id = photo.id

        logger.info("Saved photo %d for user %d", photo_id, payload.user_id)
        return photo_id

    async def get_photo(self, photo_id: int, viewer_id: int | None = None) -> PhotoRecord | None:
        with _storage_errors("buscar foto"):
            async with self.database.session() as session:
                photo = await session.get(Photo, photo_id)
                if photo is None:
                    return None
                if viewer_id is None:
                    return _photo_record(photo)
                return _photo_record(photo, await self._is_favorite(session, viewer_id, photo_id))

    async def update_photo_comment(self, photo_id: int, comment: str | None) -> bool:
        with _storage_errors("atualizar comentário"):
            async with self.database.transaction() as session:
                result = await session.execute(update(Photo).where(Photo.id == photo_id).values(comment=comment))
                return result.rowcount > 0

    async def delete_photo(self, photo_id: int) -> bool:
        with _storage_errors("deletar foto"):
            async with self.database.transaction() as session:
                await session.execute(delete(Favorite).where(Favorite.photo_id == photo_id))
                result = await session.execute(delete(Photo).where(Photo.id == photo_id))
                deleted = result.rowcount > 0

        if deleted:
            logger.info("Deleted photo %d", photo_id)
        return deleted

    async def list_photos_by_user(self, user_id: int, viewer_id: int | None = None) -> list[PhotoRecord]:
        """Photos owned by ``user_id``, newest ``taken_at`` first.

        With ``viewer_id`` each record's ``is_favorite`` reflects that
        viewer's favorites; without it ``is_favorite`` stays None.
        """
        order = (Photo.taken_at.desc(), Photo.id.desc())
        with _storage_errors("buscar fotos do usuário"):
            async with self.database.session() as session:
                if viewer_id is None:
                    result = await session.execute(select(Photo).where(Photo.user_id == user_id).order_by(*order))
                    return [_photo_record(p) for p in result.scalars().all()]

                result = await session.execute(
                    select(Photo, Favorite.id)
                    .outerjoin(Favorite, and_(Favorite.photo_id == Photo.id, Favorite.user_id == viewer_id))
                    .where(Photo.user_id == user_id)
                    .order_by(*order)
                )
                return [_photo_record(photo, favorite_id is not None) for photo, favorite_id in result.all()]

    async def list_all_photos(self, viewer_id: int | None = None) -> list[FeedItem]:
        """Feed across all users, newest first."""
        stmt = select(Photo, User.name).join(User, User.id == Photo.user_id)
        if viewer_id is not None:
            stmt = stmt.add_columns(Favorite.id).outerjoin(
                Favorite, and_(Favorite.photo_id == Photo.id, Favorite.user_id == viewer_id)
            )
        stmt = stmt.order_by(Photo.taken_at.desc(), Photo.id.desc())

        with _storage_errors("buscar feed"):
            async with self.database.session() as session:
                rows = (await session.execute(stmt)).all()

        feed = []
        for row in rows:
            is_favorite = (row[2] is not None) if viewer_id is not None else None
            feed.append(FeedItem(photo=_photo_record(row[0], is_favorite), owner_name=row[1]))
        return feed

    async def list_favorite_photos(self, user_id: int) -> list[FeedItem]:
        """The user's favorites collection, most recently favorited first."""
        with _storage_errors("buscar fotos favoritas"):
            async with self.database.session() as session:
                result = await session.execute(
                    select(Photo, User.name)
                    .join(Favorite, Favorite.photo_id == Photo.id)
                    .join(User, User.id == Photo.user_id)
                    .where(Favorite.user_id == user_id)
                    .order_by(Favorite.created_at.desc(), Favorite.id.desc())
                )
                rows = result.all()
        return [FeedItem(photo=_photo_record(photo, True), owner_name=owner) for photo, owner in rows]

    async def list_memories(
        self, user_id: int, days: int | None = None, now: datetime | None = None
    ) -> list[PhotoRecord]:
        """Photos the user took more than ``days`` days ago, newest first."""
        days = settings.memories_days if days is None else days
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)
        if cutoff.tzinfo is None:
            cutoff = cutoff.replace(tzinfo=timezone.utc)

        memories = []
        for photo in await self.list_photos_by_user(user_id):
            taken = _parse_timestamp(photo.taken_at)
            if taken is not None and taken < cutoff:
                memories.append(photo)
        return memories

    # -- favorites ----------------------------------------------------------

    async def add_favorite(self, user_id: int, photo_id: int) -> bool:
        """Favorite a photo. Returns False when it was already a favorite."""
        stmt = (
            sqlite_insert(Favorite.__table__)
            .values(user_id=user_id, photo_id=photo_id)
            .on_conflict_do_nothing(index_elements=["user_id", "photo_id"])
        )
        with _storage_errors("adicionar favorito"):
            async with self.database.transaction() as session:
                result = await session.execute(stmt)
                return result.rowcount > 0

    async def remove_favorite(self, user_id: int, photo_id: int) -> bool:
        with _storage_errors("remover favorito"):
            async with self.database.transaction() as session:
                result = await session.execute(
                    delete(Favorite).where(Favorite.user_id == user_id, Favorite.photo_id == photo_id)
                )
                return result.rowcount > 0

    async def is_favorite(self, user_id: int, photo_id: int) -> bool:
        with _storage_errors("verificar favorito"):
            async with self.database.session() as session:
                return await self._is_favorite(session, user_id, photo_id)

    @staticmethod
    async def _is_favorite(session, user_id: int, photo_id: int) -> bool:
        result = await session.execute(
            select(Favorite.id).where(Favorite.user_id == user_id, Favorite.photo_id == photo_id).limit(1)
        )
        return result.scalar_one_or_none() is not None

    # -- counters -----------------------------------------------------------

    async def count_photos(self, user_id: int) -> int:
        return await self._scalar_count(
            "contar fotos", select(func.count()).select_from(Photo).where(Photo.user_id == user_id)
        )

    async def count_distinct_locations(self, user_id: int) -> int:
        """Distinct trimmed location names, ignoring NULL and blank names."""
        return await self._scalar_count(
            "contar localizações",
            select(func.count(distinct(func.trim(Photo.location_name)))).where(
                Photo.user_id == user_id,
                Photo.location_name.is_not(None),
                func.trim(Photo.location_name) != "",
            ),
        )

    async def count_favorites(self, user_id: int) -> int:
        return await self._scalar_count(
            "contar favoritos", select(func.count()).select_from(Favorite).where(Favorite.user_id == user_id)
        )

    async def _scalar_count(self, action: str, stmt) -> int:
        with _storage_errors(action):
            async with self.database.session() as session:
                return (await session.execute(stmt)).scalar_one() or 0
