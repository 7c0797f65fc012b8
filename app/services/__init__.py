from .site_service import SiteService
from .jwt_service import JwtService
from .directory_service import DirectoryService
from .geofence_service import GeofenceOracle, SiteGeofenceOracle, RetryingGeofenceOracle
from .attendance_service import AttendanceService
from .expiry_sweeper import ExpirySweeper

__all__ = [
    "SiteService",
    "JwtService",
    "DirectoryService",
    "GeofenceOracle",
    "SiteGeofenceOracle",
    "RetryingGeofenceOracle",
    "AttendanceService",
    "ExpirySweeper"
]
