from .site_repository import SiteRepository
from .site_assignment_repository import SiteAssignmentRepository
from .attendance_session_repository import AttendanceSessionRepository
from .geofence_event_repository import GeofenceEventRepository

__all__ = [
    "SiteRepository",
    "SiteAssignmentRepository",
    "AttendanceSessionRepository",
    "GeofenceEventRepository"
]
