from geosnap.models.user import User
from geosnap.models.photo import Photo
from geosnap.models.favorite import Favorite

__all__ = ["User", "Photo", "Favorite"]
