"""
Attendance domain errors

Every error maps onto the atams exception hierarchy so the global
exception handlers render it with the right status code. The
``error_code`` in ``details`` is the stable value clients switch on.
"""
from typing import Any, Dict, Optional

from atams.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    ServiceUnavailableException,
)


def _details(error_code: str, extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    details = {"error_code": error_code}
    if extra:
        details.update(extra)
    return details


# Authorization

class NotAssigned(ForbiddenException):
    """Worker is not assigned to the requested site"""

    def __init__(self, site_id: str):
        super().__init__(
            "Worker is not assigned to this site",
            _details("NOT_ASSIGNED", {"si_id": site_id}),
        )


# Conflict

class AlreadyOpen(ConflictException):
    """Worker already has an open session"""

    def __init__(self, session_id: Optional[int] = None):
        super().__init__(
            "An attendance session is already open",
            _details("ALREADY_OPEN", {"as_id": session_id}),
        )


class AlreadyClosed(ConflictException):
    """Session was closed by another actor first"""

    def __init__(self, session_id: int, reason: Optional[str] = None):
        super().__init__(
            "Attendance session is already closed",
            _details("ALREADY_CLOSED", {"as_id": session_id, "as_checkout_reason": reason}),
        )


class LeaseRenewed(ConflictException):
    """Expiry close lost to a renewal that landed after the sweep scan"""

    def __init__(self, session_id: int):
        super().__init__(
            "Attendance session lease was renewed",
            _details("LEASE_RENEWED", {"as_id": session_id}),
        )


# Precondition

class NoActiveSession(NotFoundException):
    """No open session with this id belongs to the worker"""

    def __init__(self, session_id: Optional[int] = None):
        super().__init__(
            "No active attendance session",
            _details("NO_ACTIVE_SESSION", {"as_id": session_id}),
        )


class OutsideBoundary(ForbiddenException):
    """Coordinate failed the containment check"""

    def __init__(self, site_id: str, session_closed: bool = False, extra: Optional[Dict[str, Any]] = None):
        self.session_closed = session_closed
        details = {"si_id": site_id, "session_closed": session_closed}
        if extra:
            details.update(extra)
        super().__init__("Location is outside the site boundary", _details("OUTSIDE_BOUNDARY", details))


# Dependency

class BoundaryLookupFailed(ServiceUnavailableException):
    """Site boundary could not be resolved; callers may retry"""

    def __init__(self, site_id: str, reason: str = "Boundary lookup failed", transient: bool = True):
        self.site_id = site_id
        self.transient = transient
        super().__init__(
            reason,
            _details("BOUNDARY_LOOKUP_FAILED", {"si_id": site_id, "retryable": transient}),
        )


class StoreUnavailable(ServiceUnavailableException):
    """Session store did not answer within its timeout"""

    def __init__(self, operation: str):
        super().__init__(
            "Attendance store unavailable, try again",
            _details("STORE_UNAVAILABLE", {"operation": operation, "retryable": True}),
        )
