"""
Geofence Event Repository - Append-only access to boundary exit events
"""
from typing import List, Dict, Any
from datetime import date, datetime, time, timedelta, timezone
from sqlalchemy.orm import Session
from sqlalchemy import func

from atams.db import BaseRepository
from app.models.geofence_event import GeofenceEvent
from app.models.attendance_session import AttendanceSession


def _day_start(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


class GeofenceEventRepository(BaseRepository[GeofenceEvent]):
    def __init__(self):
        super().__init__(GeofenceEvent)

    def append(self, db: Session, event_data: Dict[str, Any]) -> GeofenceEvent:
        """Stage a new event; caller owns the commit. Events are never updated."""
        db_event = GeofenceEvent(**event_data)
        db.add(db_event)
        db.flush()
        return db_event

    def _filtered(
        self,
        query,
        company_id: str,
        user_id: int = None,
        site_id: str = None,
        session_id: int = None,
        date_from: date = None,
        date_to: date = None
    ):
        query = query.join(
            AttendanceSession, AttendanceSession.as_id == GeofenceEvent.ge_session_id
        ).filter(AttendanceSession.as_company_id == company_id)

        if user_id:
            query = query.filter(GeofenceEvent.ge_user_id == user_id)
        if site_id:
            query = query.filter(GeofenceEvent.ge_site_id == site_id)
        if session_id:
            query = query.filter(GeofenceEvent.ge_session_id == session_id)
        if date_from:
            query = query.filter(GeofenceEvent.ge_recorded_at >= _day_start(date_from))
        if date_to:
            query = query.filter(GeofenceEvent.ge_recorded_at < _day_start(date_to) + timedelta(days=1))
        return query

    def get_events_with_filters(
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
        """Get company events with various filters using ORM"""
        query = self._filtered(
            db.query(GeofenceEvent), company_id, user_id, site_id, session_id, date_from, date_to
        )
        return query.order_by(GeofenceEvent.ge_recorded_at.desc()).offset(skip).limit(limit).all()

    def count_events_with_filters(
        self,
        db: Session,
        company_id: str,
        user_id: int = None,
        site_id: str = None,
        session_id: int = None,
        date_from: date = None,
        date_to: date = None
    ) -> int:
        query = self._filtered(
            db.query(func.count(GeofenceEvent.ge_id)).select_from(GeofenceEvent), company_id, user_id, site_id, session_id, date_from, date_to
        )
        return query.scalar()
