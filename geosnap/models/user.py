from sqlalchemy import Column, Integer, String, text

from geosnap.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True)
    password = Column(String, nullable=False)  # bcrypt hash
    birth_date = Column(String, nullable=False)
    profile_image = Column(String, nullable=True)
    created_at = Column(String, server_default=text("CURRENT_TIMESTAMP"))
