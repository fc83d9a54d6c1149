from pydantic import BaseModel, Field


class PhotoCreate(BaseModel):
    user_id: int
    uri: str = Field(min_length=1)
    comment: str | None = None
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    location_name: str | None = None
    taken_at: str | None = None


class PhotoRecord(BaseModel):
    id: int
    user_id: int
    uri: str
    comment: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    location_name: str | None = None
    taken_at: str | None = None
    created_at: str | None = None
    # only set when a viewing user was supplied to the query
    is_favorite: bool | None = None

    model_config = {"from_attributes": True}

    @property
    def coordinates(self) -> tuple[float, float] | None:
        """``(latitude, longitude)``, or None unless both halves are present."""
        if self.latitude is None or self.longitude is None:
            return None
        return self.latitude, self.longitude


class FeedItem(BaseModel):
    photo: PhotoRecord
    owner_name: str
