from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import declared_attr
from sqlalchemy.sql import func

from watchrouter.database import Base


class WatchlistItem(Base):
    __tablename__ = "watchlist_items"
    __table_args__ = (UniqueConstraint("user_id", "key", name="uq_watchlist_user_key"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    key = Column(String(255), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    type = Column(String(20), nullable=False)  # movie|show
    thumb = Column(String(1000), nullable=True)
    guids = Column(JSON, default=list)
    genres = Column(JSON, default=list)

    status = Column(String(20), default="pending")  # pending|requested|grabbed|notified
    series_status = Column(String(20), nullable=True)  # continuing|ended
    movie_status = Column(String(20), nullable=True)  # available|unavailable
    sync_status = Column(String(20), default="pending")  # pending|processing|synced
    syncing = Column(Boolean, default=False)

    # Instance currently owning delivery
    sonarr_instance_id = Column(Integer, nullable=True)
    radarr_instance_id = Column(Integer, nullable=True)

    added = Column(String(50), nullable=True)  # ISO timestamp reported by Sonarr/Radarr
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<WatchlistItem {self.id} {self.title} ({self.type}) user={self.user_id}>"


class _JunctionColumns:
    @declared_attr
    def watchlist_id(cls):
        return Column(Integer, ForeignKey("watchlist_items.id", ondelete="CASCADE"), primary_key=True)

    status = Column(String(20), default="pending")
    is_primary = Column(Boolean, default=False)
    last_notified_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class WatchlistSonarrInstance(_JunctionColumns, Base):
    __tablename__ = "watchlist_sonarr_instances"

    sonarr_instance_id = Column(Integer, primary_key=True)

    @property
    def instance_id(self):
        return self.sonarr_instance_id


class WatchlistRadarrInstance(_JunctionColumns, Base):
    __tablename__ = "watchlist_radarr_instances"

    radarr_instance_id = Column(Integer, primary_key=True)

    @property
    def instance_id(self):
        return self.radarr_instance_id


class WatchlistStatusHistory(Base):
    __tablename__ = "watchlist_status_history"

    id = Column(Integer, primary_key=True)
    watchlist_item_id = Column(Integer, ForeignKey("watchlist_items.id", ondelete="CASCADE"), index=True)
    status = Column(String(20), nullable=False)
    timestamp = Column(String(50), nullable=False)
