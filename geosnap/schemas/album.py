from pydantic import BaseModel

from geosnap.schemas.photo import PhotoRecord


class Album(BaseModel):
    key: str
    photos: list[PhotoRecord]
    photo_count: int
    cover_image: str | None = None
    created_at: str | None = None


class UserStats(BaseModel):
    photo_count: int
    distinct_location_count: int
    favorite_count: int
