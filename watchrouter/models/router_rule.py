from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON
from sqlalchemy.sql import func

from watchrouter.database import Base


class RouterRule(Base):
    __tablename__ = "router_rules"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    type = Column(String(50), nullable=False, index=True)  # genre|year|language|certification|user|conditional
    criteria = Column(JSON, nullable=False)
    target_type = Column(String(20), nullable=False)  # radarr|sonarr
    target_instance_id = Column(Integer, nullable=False)
    quality_profile = Column(String(100), nullable=True)
    root_folder = Column(String(500), nullable=True)
    order = Column(Integer, default=50)
    enabled = Column(Boolean, default=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<RouterRule {self.id} {self.type} -> {self.target_type}:{self.target_instance_id}>"
