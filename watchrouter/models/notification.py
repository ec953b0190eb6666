from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.sql import func

from watchrouter.database import Base


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    watchlist_item_id = Column(Integer, nullable=True)
    title = Column(String(500), nullable=False)
    type = Column(String(50), default="watchlist_add")
    created_at = Column(DateTime, server_default=func.now())
