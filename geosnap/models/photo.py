from sqlalchemy import Column, Float, ForeignKey, Integer, String, text

from geosnap.database import Base


class Photo(Base):
    __tablename__ = "photos"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    uri = Column(String, nullable=False)
    comment = Column(String, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    location_name = Column(String, nullable=True)
    taken_at = Column(String, server_default=text("CURRENT_TIMESTAMP"))
    created_at = Column(String, server_default=text("CURRENT_TIMESTAMP"))
