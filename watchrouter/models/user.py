from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func

from watchrouter.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False, unique=True)
    is_primary = Column(Boolean, default=False)  # Plex server owner
    created_at = Column(DateTime, server_default=func.now())

    def __repr__(self):
        return f"<User {self.id} {self.name}>"
