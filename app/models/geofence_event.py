"""
Geofence Event Model - Write-once log of reported boundary exits
"""
from sqlalchemy import Column, BigInteger, String, Float, ForeignKey

from atams.db import Base
from app.models.types import BigIntegerPK, UTCDateTime


class GeofenceEvent(Base):
    """Geofence Event model for attendance schema - Table: attendance.geofence_events"""
    __tablename__ = "geofence_events"
    __table_args__ = {"schema": "attendance"}

    ge_id = Column(BigIntegerPK, primary_key=True, index=True, autoincrement=True)
    ge_user_id = Column(BigInteger, nullable=False, index=True)
    ge_site_id = Column(String(50), ForeignKey("attendance.sites.si_id"), nullable=False, index=True)
    ge_session_id = Column(BigInteger, ForeignKey("attendance.attendance_sessions.as_id"), nullable=False, index=True)
    ge_event_type = Column(String(10), nullable=False, default="exit")  # only 'exit' for now
    ge_lat = Column(Float, nullable=True)
    ge_lon = Column(Float, nullable=True)
    ge_recorded_at = Column(UTCDateTime, nullable=False)
