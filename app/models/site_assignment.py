"""
Site Assignment Model - Which workers may clock in at which site
"""
from sqlalchemy import Column, BigInteger, String, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func

from atams.db import Base
from app.models.types import BigIntegerPK, UTCDateTime


class SiteAssignment(Base):
    """Site Assignment model for attendance schema - Table: attendance.site_assignments"""
    __tablename__ = "site_assignments"
    __table_args__ = (
        UniqueConstraint("sa_user_id", "sa_site_id", name="uq_site_assignments_user_site"),
        {"schema": "attendance"},
    )

    sa_id = Column(BigIntegerPK, primary_key=True, index=True, autoincrement=True)
    sa_user_id = Column(BigInteger, nullable=False, index=True)
    sa_company_id = Column(String(50), nullable=False, index=True)
    sa_site_id = Column(String(50), ForeignKey("attendance.sites.si_id", ondelete="CASCADE"), nullable=False, index=True)
    sa_created_at = Column(UTCDateTime, server_default=func.now(), nullable=False)
