import enum
import logging

from geosnap.services.record_store import RecordStore

logger = logging.getLogger(__name__)


class FavoriteState(enum.Enum):
    NOT_FAVORITED = "not_favorited"
    FAVORITED = "favorited"


class FavoriteToggle:
    """Flip a (user, photo) pair between favorited and not favorited.

    The read and the write are separate statements, so two overlapping
    toggles may both observe the same state. The unique (user_id, photo_id)
    constraint still keeps at most one favorite row per pair.
    """

    def __init__(self, store: RecordStore):
        self.store = store

    async def state(self, user_id: int, photo_id: int) -> FavoriteState:
        if await self.store.is_favorite(user_id, photo_id):
            return FavoriteState.FAVORITED
        return FavoriteState.NOT_FAVORITED

    async def toggle(self, user_id: int, photo_id: int) -> bool:
        """Returns the new state: True when the photo is now a favorite."""
        if await self.store.is_favorite(user_id, photo_id):
            await self.store.remove_favorite(user_id, photo_id)
            logger.debug("User %d unfavorited photo %d", user_id, photo_id)
            return False

        await self.store.add_favorite(user_id, photo_id)
        logger.debug("User %d favorited photo %d", user_id, photo_id)
        return True
