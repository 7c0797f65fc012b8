"""
Attendance Session Model - One row per clock-in, leased until clock-out
"""
from sqlalchemy import Column, BigInteger, String, Float, Integer, Boolean, ForeignKey, Index, text
from sqlalchemy.sql import func

from atams.db import Base
from app.models.types import BigIntegerPK, UTCDateTime


class CheckoutReason:
    MANUAL = "manual"
    AUTO_GEOFENCE_EXIT = "auto_geofence_exit"
    AUTO_HEARTBEAT_EXPIRED = "auto_heartbeat_expired"

    ALL = (MANUAL, AUTO_GEOFENCE_EXIT, AUTO_HEARTBEAT_EXPIRED)


class AttendanceSession(Base):
    """Attendance Session model for attendance schema - Table: attendance.attendance_sessions"""
    __tablename__ = "attendance_sessions"
    __table_args__ = (
        # At most one open session per worker
        Index(
            "uq_attendance_sessions_open_user",
            "as_user_id",
            unique=True,
            postgresql_where=text("as_is_open"),
            sqlite_where=text("as_is_open = 1"),
        ),
        Index("ix_attendance_sessions_open_lease", "as_is_open", "as_lease_expires_at"),
        {"schema": "attendance"},
    )

    as_id = Column(BigIntegerPK, primary_key=True, index=True, autoincrement=True)
    as_user_id = Column(BigInteger, nullable=False, index=True)
    as_site_id = Column(String(50), ForeignKey("attendance.sites.si_id"), nullable=False, index=True)
    as_company_id = Column(String(50), nullable=False, index=True)

    as_checkin_at = Column(UTCDateTime, nullable=False)
    as_checkin_lat = Column(Float, nullable=False)
    as_checkin_lon = Column(Float, nullable=False)
    as_checkin_accuracy_m = Column(Float, nullable=True)

    as_checkout_at = Column(UTCDateTime, nullable=True)
    as_checkout_lat = Column(Float, nullable=True)
    as_checkout_lon = Column(Float, nullable=True)
    as_checkout_reason = Column(String(32), nullable=True)  # see CheckoutReason

    as_lease_expires_at = Column(UTCDateTime, nullable=False)
    as_renewal_count = Column(Integer, nullable=False, default=0)
    as_is_open = Column(Boolean, nullable=False, default=True)

    # Last coordinate seen at clock-in or renewal
    as_last_lat = Column(Float, nullable=True)
    as_last_lon = Column(Float, nullable=True)
    as_last_seen_at = Column(UTCDateTime, nullable=True)

    as_created_at = Column(UTCDateTime, server_default=func.now(), nullable=False)
    as_updated_at = Column(UTCDateTime, onupdate=func.now(), nullable=True)
