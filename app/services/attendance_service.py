"""
Attendance Service - Session lifecycle for geofenced attendance

A session is opened by clock-in, kept alive by lease renewals and closed
exactly once, by the worker (manual), by a boundary exit (reported or
detected on renewal) or by the expiry sweeper. Every transition is one
conditional write in the session store, so racing closers and renewals
resolve in the database: the first write wins and the rest observe it.
"""
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional
from datetime import datetime, date, timedelta
from sqlalchemy.orm import Session
from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError

from app.models.attendance_session import CheckoutReason
from app.models.types import utcnow
from app.repositories.attendance_session_repository import AttendanceSessionRepository
from app.repositories.geofence_event_repository import GeofenceEventRepository
from app.services.directory_service import DirectoryService
from app.services.geofence_service import GeofenceOracle, SiteGeofenceOracle, RetryingGeofenceOracle
from app.schemas.attendance import (
    AttendanceSession,
    GeofenceEvent,
    OpenSessionResponse,
    LeaseResponse,
    ExitReportResponse,
    CurrentSessionResponse
)
from app.core.config import settings
from app.core.exceptions import (
    AlreadyOpen,
    AlreadyClosed,
    LeaseRenewed,
    NoActiveSession,
    NotAssigned,
    OutsideBoundary,
    BoundaryLookupFailed,
    StoreUnavailable
)
from atams.exceptions import BadRequestException
from atams.transaction import transaction
from atams.logging import get_logger

logger = get_logger(__name__)


def default_geofence_oracle() -> GeofenceOracle:
    return RetryingGeofenceOracle(
        SiteGeofenceOracle(),
        attempts=settings.GEOFENCE_LOOKUP_RETRIES,
        base_delay_ms=settings.GEOFENCE_RETRY_BASE_DELAY_MS,
        max_delay_ms=settings.GEOFENCE_RETRY_MAX_DELAY_MS
    )


class AttendanceService:
    def __init__(
        self,
        geofence: Optional[GeofenceOracle] = None,
        directory: Optional[DirectoryService] = None,
        clock: Optional[Callable[[], datetime]] = None,
        lease_duration: Optional[timedelta] = None
    ) -> None:
        self.session_repo = AttendanceSessionRepository()
        self.event_repo = GeofenceEventRepository()
        self.directory = directory or DirectoryService()
        self.geofence = geofence or default_geofence_oracle()
        self.clock = clock or utcnow
        self.lease_duration = lease_duration or timedelta(seconds=settings.LEASE_DURATION_SECONDS)

    @contextmanager
    def _store(self, db: Session, operation: str) -> Iterator[None]:
        """Turn store timeouts and dropped connections into a retryable error"""
        try:
            yield
        except (OperationalError, PoolTimeoutError) as e:
            db.rollback()
            logger.warning(
                f"Attendance store unavailable during {operation}: {e.__class__.__name__}",
                extra={"extra_data": {"operation": operation}}
            )
            raise StoreUnavailable(operation) from e

    def _check_inside(self, db: Session, site_id: str, lat: float, lon: float) -> bool:
        try:
            return self.geofence.is_inside(db, site_id, lat, lon)
        except BoundaryLookupFailed as e:
            logger.warning(
                f"Boundary lookup failed for site {site_id}: {e.message}",
                extra={"extra_data": {"si_id": site_id, "retryable": e.transient}}
            )
            raise

    # ==================== LIFECYCLE ====================

    def open_session(
        self,
        db: Session,
        user_id: int,
        company_id: str,
        site_id: str,
        lat: float,
        lon: float,
        accuracy_m: Optional[float] = None
    ) -> OpenSessionResponse:
        """
        Clock in: open a new leased session

        Args:
            db: Database session
            user_id: Verified worker ID
            company_id: Worker's company
            site_id: Site the worker is clocking in at
            lat, lon: Current coordinate
            accuracy_m: Reported location accuracy in meters

        Returns:
            OpenSessionResponse: New session with its lease expiry

        Raises:
            NotAssigned: Site is not in the worker's assigned sites
            OutsideBoundary: Coordinate fails the containment check
            BoundaryLookupFailed: Boundary could not be evaluated (fail closed)
            AlreadyOpen: Worker already has an open session
        """
        if not self.directory.is_assigned(db, user_id, company_id, site_id):
            logger.info(f"Clock-in refused, user {user_id} not assigned to site {site_id}")
            raise NotAssigned(site_id)

        if not self._check_inside(db, site_id, lat, lon):
            logger.info(f"Clock-in refused, user {user_id} outside site {site_id}")
            raise OutsideBoundary(site_id)

        now = self.clock()
        session_data = {
            "as_user_id": user_id,
            "as_site_id": site_id,
            "as_company_id": company_id,
            "as_checkin_at": now,
            "as_checkin_lat": lat,
            "as_checkin_lon": lon,
            "as_checkin_accuracy_m": accuracy_m,
            "as_lease_expires_at": now + self.lease_duration,
            "as_renewal_count": 0,
            "as_is_open": True,
            "as_last_lat": lat,
            "as_last_lon": lon,
            "as_last_seen_at": now
        }
        with self._store(db, "open_session"):
            db_session = self.session_repo.insert_if_no_open_session(db, session_data)
            if db_session is None:
                existing = self.session_repo.get_open_session(db, user_id)

        if db_session is None:
            logger.info(f"Clock-in refused, user {user_id} already has an open session")
            raise AlreadyOpen(existing.as_id if existing else None)

        logger.info(
            f"Session {db_session.as_id} opened for user {user_id} at site {site_id}",
            extra={"extra_data": {"as_id": db_session.as_id, "si_id": site_id}}
        )
        return OpenSessionResponse(
            as_id=db_session.as_id,
            si_id=db_session.as_site_id,
            as_checkin_at=db_session.as_checkin_at,
            as_lease_expires_at=db_session.as_lease_expires_at
        )

    def renew_lease(self, db: Session, session_id: int, user_id: int, lat: float, lon: float) -> LeaseResponse:
        """
        Heartbeat: re-check containment and extend the lease

        Outside the boundary the session is closed with auto_geofence_exit
        in the same conditional write that would otherwise have renewed it.

        Raises:
            NoActiveSession: Session missing, not the worker's, or already closed
            OutsideBoundary: Coordinate outside; the session has been closed
            BoundaryLookupFailed: Boundary could not be evaluated; nothing written
        """
        with self._store(db, "renew_lease"):
            session = self.session_repo.get_for_user(db, session_id, user_id)
        if session is None or not session.as_is_open:
            raise NoActiveSession(session_id)

        site_id = session.as_site_id
        inside = self._check_inside(db, site_id, lat, lon)
        now = self.clock()

        if not inside:
            with self._store(db, "renew_lease"):
                with transaction(db):
                    closed = self.session_repo.close_if_open(
                        db, session_id, user_id, now, CheckoutReason.AUTO_GEOFENCE_EXIT, lat, lon
                    )
            if not closed:
                # another actor closed it between our read and write
                raise NoActiveSession(session_id)
            logger.info(
                f"Session {session_id} closed on renewal outside site {site_id}",
                extra={"extra_data": {"as_id": session_id, "reason": CheckoutReason.AUTO_GEOFENCE_EXIT}}
            )
            raise OutsideBoundary(
                site_id,
                session_closed=True,
                extra={"as_id": session_id, "as_checkout_at": now.isoformat()}
            )

        new_expiry = now + self.lease_duration
        with self._store(db, "renew_lease"):
            with transaction(db):
                matched = self.session_repo.advance_lease(db, session_id, user_id, new_expiry, lat, lon, now)
            current = self.session_repo.get_for_user(db, session_id, user_id)

        if current is None or not current.as_is_open:
            raise NoActiveSession(session_id)
        if not matched:
            logger.debug(f"Session {session_id} lease already at or past {new_expiry.isoformat()}")

        return LeaseResponse(
            as_id=current.as_id,
            as_lease_expires_at=current.as_lease_expires_at,
            as_renewal_count=current.as_renewal_count
        )

    def close_session(
        self,
        db: Session,
        session_id: int,
        user_id: int,
        reason: str,
        lat: Optional[float] = None,
        lon: Optional[float] = None,
        lease_lapsed_before: Optional[datetime] = None
    ) -> AttendanceSession:
        """
        Close a session exactly once

        The write only applies while the session is open, so concurrent
        closers cannot overwrite each other. Without a coordinate the last
        known location is recorded. With ``lease_lapsed_before`` the write
        additionally requires the lease to still be lapsed at that instant.

        Raises:
            NoActiveSession: No session with this id belongs to the worker
            AlreadyClosed: Another close won the race
            LeaseRenewed: Lease was renewed after ``lease_lapsed_before`` was read
        """
        if reason not in CheckoutReason.ALL:
            raise BadRequestException(f"Unknown checkout reason: {reason}")

        now = self.clock()
        with self._store(db, "close_session"):
            with transaction(db):
                matched = self.session_repo.close_if_open(
                    db, session_id, user_id, now, reason, lat, lon,
                    lease_lapsed_before=lease_lapsed_before
                )
            session = self.session_repo.get_for_user(db, session_id, user_id)

        if session is None:
            raise NoActiveSession(session_id)
        if not matched:
            if session.as_is_open:
                raise LeaseRenewed(session_id)
            logger.debug(
                f"Session {session_id} already closed ({session.as_checkout_reason}), {reason} ignored"
            )
            raise AlreadyClosed(session_id, session.as_checkout_reason)

        logger.info(
            f"Session {session_id} closed ({reason}) for user {user_id}",
            extra={"extra_data": {"as_id": session_id, "reason": reason}}
        )
        return AttendanceSession.model_validate(session)

    def clock_out(self, db: Session, session_id: int, user_id: int, lat: float, lon: float) -> AttendanceSession:
        """Worker's own clock-out"""
        return self.close_session(db, session_id, user_id, CheckoutReason.MANUAL, lat, lon)

    def report_boundary_exit(
        self,
        db: Session,
        session_id: int,
        user_id: int,
        lat: float,
        lon: float
    ) -> ExitReportResponse:
        """
        Record an externally reported boundary exit and close the session

        The exit event is appended and the close attempted in one
        transaction. A report for a session that is already closed is
        recorded but is not an error; ``success`` tells whether this report
        closed the session.
        """
        with self._store(db, "report_boundary_exit"):
            session = self.session_repo.get_for_user(db, session_id, user_id)
        if session is None:
            logger.debug(f"Exit report for unknown session {session_id} from user {user_id}")
            return ExitReportResponse(success=False, as_id=session_id)

        now = self.clock()
        with self._store(db, "report_boundary_exit"):
            with transaction(db):
                self.event_repo.append(db, {
                    "ge_user_id": user_id,
                    "ge_site_id": session.as_site_id,
                    "ge_session_id": session_id,
                    "ge_event_type": "exit",
                    "ge_lat": lat,
                    "ge_lon": lon,
                    "ge_recorded_at": now
                })
                matched = self.session_repo.close_if_open(
                    db, session_id, user_id, now, CheckoutReason.AUTO_GEOFENCE_EXIT, lat, lon
                )
            current = self.session_repo.get_for_user(db, session_id, user_id)

        if matched:
            logger.info(
                f"Session {session_id} closed by reported boundary exit",
                extra={"extra_data": {"as_id": session_id, "reason": CheckoutReason.AUTO_GEOFENCE_EXIT}}
            )
        else:
            logger.debug(f"Exit report for closed session {session_id} recorded only")

        return ExitReportResponse(
            success=bool(matched),
            as_id=session_id,
            as_checkout_reason=current.as_checkout_reason if current else None
        )

    # ==================== QUERIES ====================

    def get_current_session(self, db: Session, user_id: int) -> CurrentSessionResponse:
        """Get worker's open session, if any"""
        session = self.session_repo.get_open_session(db, user_id)
        if not session:
            return CurrentSessionResponse()

        return CurrentSessionResponse(
            as_id=session.as_id,
            si_id=session.as_site_id,
            as_checkin_at=session.as_checkin_at,
            as_lease_expires_at=session.as_lease_expires_at,
            as_renewal_count=session.as_renewal_count
        )

    def get_user_sessions(self, db: Session, user_id: int, skip: int = 0, limit: int = 50) -> List[AttendanceSession]:
        sessions = self.session_repo.get_user_sessions(db, user_id, skip, limit)
        return [AttendanceSession.model_validate(s) for s in sessions]

    def count_user_sessions(self, db: Session, user_id: int) -> int:
        return self.session_repo.count_user_sessions(db, user_id)

    def get_sessions_admin(
        self,
        db: Session,
        company_id: str,
        user_id: int = None,
        site_id: str = None,
        date_from: date = None,
        date_to: date = None,
        is_open: bool = None,
        reason: str = None,
        skip: int = 0,
        limit: int = 100,
        sort: str = "desc"
    ) -> List[AttendanceSession]:
        """Get company attendance sessions for admin (with filters)"""
        sessions = self.session_repo.get_sessions_with_filters(
            db, company_id, user_id, site_id, date_from, date_to, is_open, reason, skip, limit, sort
        )
        return [AttendanceSession.model_validate(s) for s in sessions]

    def count_sessions_admin(
        self,
        db: Session,
        company_id: str,
        user_id: int = None,
        site_id: str = None,
        date_from: date = None,
        date_to: date = None,
        is_open: bool = None,
        reason: str = None
    ) -> int:
        """Count company attendance sessions for admin (with filters)"""
        return self.session_repo.count_sessions_with_filters(
            db, company_id, user_id, site_id, date_from, date_to, is_open, reason
        )

    def get_geofence_events(
        self,
        db: Session,
        company_id: str,
        user_id: int = None,
        site_id: str = None,
        session_id: int = None,
        date_from: date = None,
        date_to: date = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[GeofenceEvent]:
        events = self.event_repo.get_events_with_filters(
            db, company_id, user_id, site_id, session_id, date_from, date_to, skip, limit
        )
        return [GeofenceEvent.model_validate(e) for e in events]

    def count_geofence_events(
        self,
        db: Session,
        company_id: str,
        user_id: int = None,
        site_id: str = None,
        session_id: int = None,
        date_from: date = None,
        date_to: date = None
    ) -> int:
        return self.event_repo.count_events_with_filters(
            db, company_id, user_id, site_id, session_id, date_from, date_to
        )
