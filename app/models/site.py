"""
Site Model - Locations workers clock in at
"""
from sqlalchemy import Column, String, JSON
from sqlalchemy.sql import func

from atams.db import Base
from app.models.types import UTCDateTime


class Site(Base):
    """Site model for attendance schema - Table: attendance.sites"""
    __tablename__ = "sites"
    __table_args__ = {"schema": "attendance"}

    si_id = Column(String(50), primary_key=True, index=True)
    si_company_id = Column(String(50), nullable=False, index=True)
    si_name = Column(String(255), nullable=False)
    # {"type": "circle", "center": [-6.2, 106.8], "radius_m": 150}
    # {"type": "polygon", "coordinates": [[lat, lon], ...]}
    si_geo_fence = Column(JSON, nullable=True)
    si_created_at = Column(UTCDateTime, server_default=func.now(), nullable=False)
    si_updated_at = Column(UTCDateTime, onupdate=func.now(), nullable=True)
