from sqlalchemy import Column, ForeignKey, Integer, String, UniqueConstraint, text

from geosnap.database import Base


class Favorite(Base):
    __tablename__ = "favorites"
    __table_args__ = (UniqueConstraint("user_id", "photo_id", name="uq_favorites_user_photo"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    photo_id = Column(Integer, ForeignKey("photos.id"), nullable=False)
    created_at = Column(String, server_default=text("CURRENT_TIMESTAMP"))
