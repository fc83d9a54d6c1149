"""Albums and statistics derived from stored photos.

Nothing here is persisted or cached; every call recomputes from its input.
"""
import math
from typing import Iterable

from geosnap.schemas.album import Album, UserStats
from geosnap.schemas.photo import PhotoRecord

NO_LOCATION = "Sem localização"

EARTH_RADIUS_M = 6371000


def album_key(photo: PhotoRecord) -> str:
    name = (photo.location_name or "").strip()
    return name or NO_LOCATION


def group_into_albums(photos: Iterable[PhotoRecord]) -> list[Album]:
    """Group photos by location name in a single pass.

    Albums come out in the order their key is first seen and members keep
    their input order, so a newest-first input gives newest-first albums.
    """
    groups: dict[str, list[PhotoRecord]] = {}
    for photo in photos:
        groups.setdefault(album_key(photo), []).append(photo)

    albums = []
    for key, members in groups.items():
        cover = next((p.uri for p in members if p.uri), None)
        first = members[0]
        albums.append(Album(
            key=key,
            photos=members,
            photo_count=len(members),
            cover_image=cover,
            created_at=first.created_at or first.taken_at,
        ))
    return albums


async def compute_user_stats(store, user_id: int) -> UserStats:
    return UserStats(
        photo_count=await store.count_photos(user_id),
        distinct_location_count=await store.count_distinct_locations(user_id),
        favorite_count=await store.count_favorites(user_id),
    )


def _valid_coordinate(latitude: float | None, longitude: float | None) -> bool:
    if latitude is None or longitude is None:
        return False
    return -90 <= latitude <= 90 and -180 <= longitude <= 180


def distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> int:
    """Great-circle distance in whole metres (haversine). Invalid input gives 0."""
    if not _valid_coordinate(lat1, lon1) or not _valid_coordinate(lat2, lon2):
        return 0

    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return round(EARTH_RADIUS_M * c)


def photos_near(
    photos: Iterable[PhotoRecord], latitude: float, longitude: float, radius_m: float = 1000
) -> list[PhotoRecord]:
    nearby = []
    for photo in photos:
        coordinates = photo.coordinates
        if coordinates is None:
            continue
        if distance_m(latitude, longitude, *coordinates) <= radius_m:
            nearby.append(photo)
    return nearby
