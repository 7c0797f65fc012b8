"""
Attendance Schemas for sessions and geofence events
"""
from typing import Optional, Literal
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, computed_field

CheckoutReasonLiteral = Literal["manual", "auto_geofence_exit", "auto_heartbeat_expired"]


class AttendanceSessionBase(BaseModel):
    as_user_id: int
    as_site_id: str
    as_company_id: str
    as_checkin_at: datetime
    as_checkin_lat: float
    as_checkin_lon: float
    as_checkin_accuracy_m: Optional[float] = None
    as_checkout_at: Optional[datetime] = None
    as_checkout_lat: Optional[float] = None
    as_checkout_lon: Optional[float] = None
    as_checkout_reason: Optional[CheckoutReasonLiteral] = None
    as_lease_expires_at: datetime
    as_renewal_count: int = 0
    as_is_open: bool = True


class AttendanceSessionInDB(AttendanceSessionBase):
    model_config = ConfigDict(from_attributes=True)

    as_id: int
    as_created_at: datetime
    as_updated_at: Optional[datetime] = None


class AttendanceSession(AttendanceSessionInDB):
    @computed_field
    @property
    def worked_seconds(self) -> Optional[int]:
        """Billable duration of a closed session"""
        if self.as_checkout_at is None:
            return None
        return max(0, int((self.as_checkout_at - self.as_checkin_at).total_seconds()))


class GeofenceEvent(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    ge_id: int
    ge_user_id: int
    ge_site_id: str
    ge_session_id: int
    ge_event_type: Literal["exit"]
    ge_lat: Optional[float] = None
    ge_lon: Optional[float] = None
    ge_recorded_at: datetime


# Request/Response schemas for API endpoints
class LocationRequest(BaseModel):
    """Coordinate reported by the worker's device"""
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)


class OpenSessionRequest(LocationRequest):
    """Request schema for clock-in"""
    site_id: str = Field(min_length=1, max_length=50)
    accuracy_m: Optional[float] = Field(default=None, ge=0)


class OpenSessionResponse(BaseModel):
    """Response schema for clock-in"""
    as_id: int
    si_id: str
    as_checkin_at: datetime
    as_lease_expires_at: datetime


class LeaseResponse(BaseModel):
    """Response schema for lease renewal"""
    as_id: int
    as_lease_expires_at: datetime
    as_renewal_count: int


class ClockOutResponse(BaseModel):
    """Response schema for a closed session"""
    as_id: int
    as_checkin_at: datetime
    as_checkout_at: datetime
    as_checkout_reason: CheckoutReasonLiteral


class ExitReportResponse(BaseModel):
    """Response schema for a boundary exit report"""
    success: bool
    as_id: int
    as_checkout_reason: Optional[CheckoutReasonLiteral] = None


class CurrentSessionResponse(BaseModel):
    """Worker's open session, empty when none"""
    as_id: Optional[int] = None
    si_id: Optional[str] = None
    as_checkin_at: Optional[datetime] = None
    as_lease_expires_at: Optional[datetime] = None
    as_renewal_count: Optional[int] = None
