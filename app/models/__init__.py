from .site import Site
from .site_assignment import SiteAssignment
from .attendance_session import AttendanceSession, CheckoutReason
from .geofence_event import GeofenceEvent

__all__ = [
    "Site",
    "SiteAssignment",
    "AttendanceSession",
    "CheckoutReason",
    "GeofenceEvent"
]
