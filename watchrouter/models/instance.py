from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON
from sqlalchemy.sql import func

from watchrouter.database import Base


class _InstanceColumns:
    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    base_url = Column(String(500), nullable=False)
    api_key = Column(String(255), nullable=False)
    is_default = Column(Boolean, default=False, nullable=False)
    synced_instances = Column(JSON, default=list)  # instance ids mirroring this one
    root_folder = Column(String(500), nullable=True)
    quality_profile = Column(String(100), nullable=True)  # id or profile name
    tags = Column(JSON, default=list)
    search_on_add = Column(Boolean, default=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    @property
    def synced_instance_ids(self):
        return [int(i) for i in (self.synced_instances or []) if str(i).isdigit()]

    def __repr__(self):
        return f"<{type(self).__name__} {self.id} {self.name} default={self.is_default}>"


class SonarrInstance(_InstanceColumns, Base):
    __tablename__ = "sonarr_instances"

    season_monitoring = Column(String(50), default="all")


class RadarrInstance(_InstanceColumns, Base):
    __tablename__ = "radarr_instances"

    minimum_availability = Column(String(50), default="released")
