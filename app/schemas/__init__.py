from atams.schemas import DataResponse, PaginationResponse

from .site import Site, SiteCreate, SitePatch, GeoFence, SiteAssignment, SiteAssignmentCreate
from .attendance import (
    AttendanceSession,
    GeofenceEvent,
    LocationRequest,
    OpenSessionRequest,
    OpenSessionResponse,
    LeaseResponse,
    ClockOutResponse,
    ExitReportResponse,
    CurrentSessionResponse
)
from .maintenance import SweepResult

__all__ = [
    # Site schemas
    "Site",
    "SiteCreate",
    "SitePatch",
    "GeoFence",
    "SiteAssignment",
    "SiteAssignmentCreate",
    # Attendance schemas
    "AttendanceSession",
    "GeofenceEvent",
    "LocationRequest",
    "OpenSessionRequest",
    "OpenSessionResponse",
    "LeaseResponse",
    "ClockOutResponse",
    "ExitReportResponse",
    "CurrentSessionResponse",
    # Maintenance schemas
    "SweepResult",
    # Common schemas
    "DataResponse",
    "PaginationResponse"
]
