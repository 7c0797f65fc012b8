"""
Attendance Session Repository - Data access layer for attendance sessions

Every mutation here is a single conditional statement. The condition is
the precondition (no open session / session still open), so concurrent
writers are serialized by the database rather than by read-then-write.
"""
from typing import Optional, List, Dict, Any, Tuple
from datetime import datetime, date, time, timedelta, timezone
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from sqlalchemy import and_, or_, func, update

from atams.db import BaseRepository
from app.models.attendance_session import AttendanceSession


def _day_start(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


class AttendanceSessionRepository(BaseRepository[AttendanceSession]):
    def __init__(self):
        super().__init__(AttendanceSession)

    # ==================== CONDITIONAL WRITES ====================

    def insert_if_no_open_session(
        self,
        db: Session,
        session_data: Dict[str, Any],
        attempts: int = 2
    ) -> Optional[AttendanceSession]:
        """
        Insert a new open session unless the worker already has one.

        The partial unique index on (as_user_id) WHERE as_is_open decides
        the race. Returns None when the insert lost to an existing open
        session. If the conflicting session was closed before it could be
        re-read, the insert is tried again; a failure that persists after
        `attempts` is re-raised.
        """
        for attempt in range(attempts):
            db_session = AttendanceSession(**session_data)
            db.add(db_session)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                if self.get_open_session(db, session_data["as_user_id"]) is not None:
                    return None
                if attempt == attempts - 1:
                    raise
                continue
            db.refresh(db_session)
            return db_session

    def advance_lease(
        self,
        db: Session,
        session_id: int,
        user_id: int,
        new_expiry: datetime,
        lat: float,
        lon: float,
        seen_at: datetime
    ) -> int:
        """
        Move the lease forward on a still-open session.

        Applies only while the session is open and only if the new expiry
        is later than the stored one. Returns the matched row count (0 or 1).
        Caller owns the commit.
        """
        stmt = (
            update(AttendanceSession)
            .where(
                and_(
                    AttendanceSession.as_id == session_id,
                    AttendanceSession.as_user_id == user_id,
                    AttendanceSession.as_is_open.is_(True),
                    AttendanceSession.as_lease_expires_at < new_expiry
                )
            )
            .values(
                as_lease_expires_at=new_expiry,
                as_renewal_count=AttendanceSession.as_renewal_count + 1,
                as_last_lat=lat,
                as_last_lon=lon,
                as_last_seen_at=seen_at,
                as_updated_at=seen_at
            )
            .execution_options(synchronize_session=False)
        )
        return db.execute(stmt).rowcount

    def close_if_open(
        self,
        db: Session,
        session_id: int,
        user_id: int,
        closed_at: datetime,
        reason: str,
        lat: Optional[float] = None,
        lon: Optional[float] = None,
        lease_lapsed_before: Optional[datetime] = None
    ) -> int:
        """
        Close a session if, and only if, it is still open.

        Without a coordinate the last known location is recorded. With
        `lease_lapsed_before` the lease must also still be lapsed at that
        instant, so a renewal that lands after an expiry scan wins. Returns
        the matched row count; 0 means the condition no longer held.
        Caller owns the commit.
        """
        values = {
            "as_is_open": False,
            "as_checkout_at": closed_at,
            "as_checkout_reason": reason,
            "as_updated_at": closed_at,
        }
        if lat is None or lon is None:
            values["as_checkout_lat"] = AttendanceSession.as_last_lat
            values["as_checkout_lon"] = AttendanceSession.as_last_lon
        else:
            values["as_checkout_lat"] = lat
            values["as_checkout_lon"] = lon

        conditions = [
            AttendanceSession.as_id == session_id,
            AttendanceSession.as_user_id == user_id,
            AttendanceSession.as_is_open.is_(True)
        ]
        if lease_lapsed_before is not None:
            conditions.append(AttendanceSession.as_lease_expires_at < lease_lapsed_before)

        stmt = (
            update(AttendanceSession)
            .where(and_(*conditions))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return db.execute(stmt).rowcount

    # ==================== READS ====================

    def get_for_user(self, db: Session, session_id: int, user_id: int) -> Optional[AttendanceSession]:
        """Fresh read of a session owned by the worker (bypasses the identity map)"""
        return db.query(AttendanceSession).filter(
            and_(
                AttendanceSession.as_id == session_id,
                AttendanceSession.as_user_id == user_id
            )
        ).populate_existing().first()

    def get_open_session(self, db: Session, user_id: int) -> Optional[AttendanceSession]:
        """Get the worker's open session, if any"""
        return db.query(AttendanceSession).filter(
            and_(
                AttendanceSession.as_user_id == user_id,
                AttendanceSession.as_is_open.is_(True)
            )
        ).populate_existing().first()

    def get_expired_open_sessions(
        self,
        db: Session,
        now: datetime,
        limit: int = 500,
        after: Optional[Tuple[datetime, int]] = None
    ) -> List[AttendanceSession]:
        """
        Open sessions whose lease lapsed before `now`, oldest lease first

        `after` is the (lease, id) of the last row of the previous page.
        """
        query = db.query(AttendanceSession).filter(
            and_(
                AttendanceSession.as_is_open.is_(True),
                AttendanceSession.as_lease_expires_at < now
            )
        )
        if after is not None:
            lease, session_id = after
            query = query.filter(
                or_(
                    AttendanceSession.as_lease_expires_at > lease,
                    and_(
                        AttendanceSession.as_lease_expires_at == lease,
                        AttendanceSession.as_id > session_id
                    )
                )
            )
        return query.order_by(
            AttendanceSession.as_lease_expires_at.asc(),
            AttendanceSession.as_id.asc()
        ).limit(limit).all()

    def get_user_sessions(self, db: Session, user_id: int, skip: int = 0, limit: int = 50) -> List[AttendanceSession]:
        """Get worker's sessions with pagination, newest first"""
        return db.query(AttendanceSession).filter(
            AttendanceSession.as_user_id == user_id
        ).order_by(AttendanceSession.as_checkin_at.desc()).offset(skip).limit(limit).all()

    def count_user_sessions(self, db: Session, user_id: int) -> int:
        return db.query(func.count(AttendanceSession.as_id)).filter(
            AttendanceSession.as_user_id == user_id
        ).scalar()

    def _filtered(
        self,
        db: Session,
        query,
        company_id: str = None,
        user_id: int = None,
        site_id: str = None,
        date_from: date = None,
        date_to: date = None,
        is_open: bool = None,
        reason: str = None
    ):
        if company_id:
            query = query.filter(AttendanceSession.as_company_id == company_id)
        if user_id:
            query = query.filter(AttendanceSession.as_user_id == user_id)
        if site_id:
            query = query.filter(AttendanceSession.as_site_id == site_id)
        if date_from:
            query = query.filter(AttendanceSession.as_checkin_at >= _day_start(date_from))
        if date_to:
            query = query.filter(AttendanceSession.as_checkin_at < _day_start(date_to) + timedelta(days=1))
        if is_open is not None:
            query = query.filter(AttendanceSession.as_is_open.is_(is_open))
        if reason:
            query = query.filter(AttendanceSession.as_checkout_reason == reason)
        return query

    def get_sessions_with_filters(
        self,
        db: Session,
        company_id: str = None,
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
        """Get sessions with various filters using ORM"""
        query = self._filtered(
            db, db.query(AttendanceSession),
            company_id, user_id, site_id, date_from, date_to, is_open, reason
        )

        if sort.lower() == "asc":
            query = query.order_by(AttendanceSession.as_checkin_at.asc())
        else:
            query = query.order_by(AttendanceSession.as_checkin_at.desc())

        return query.offset(skip).limit(limit).all()

    def count_sessions_with_filters(
        self,
        db: Session,
        company_id: str = None,
        user_id: int = None,
        site_id: str = None,
        date_from: date = None,
        date_to: date = None,
        is_open: bool = None,
        reason: str = None
    ) -> int:
        """Count sessions with the same filters as get_sessions_with_filters"""
        query = self._filtered(
            db, db.query(func.count(AttendanceSession.as_id)),
            company_id, user_id, site_id, date_from, date_to, is_open, reason
        )
        return query.scalar()
