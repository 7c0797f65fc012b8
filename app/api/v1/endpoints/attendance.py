"""
Attendance Endpoints - Clock-in, lease renewal, clock-out, exit reports and history
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from datetime import date

from app.db.session import get_db
from app.services.attendance_service import AttendanceService
from app.schemas import (
    OpenSessionRequest,
    OpenSessionResponse,
    LocationRequest,
    LeaseResponse,
    ClockOutResponse,
    ExitReportResponse,
    DataResponse,
    PaginationResponse
)
from app.api.deps import require_auth, require_min_role_level
from app.core.config import settings
from atams.encryption import encrypt_response_data
from atams.exceptions import BadRequestException

router = APIRouter()
attendance_service = AttendanceService()


def _parse_date(value: Optional[str], field: str) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise BadRequestException(f"Invalid {field} format. Use YYYY-MM-DD")


@router.post(
    "/sessions",
    response_model=DataResponse[OpenSessionResponse],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_min_role_level(1))]
)
def open_session(
    request: OpenSessionRequest,
    db: Session = Depends(get_db),
    current_user: dict = Depends(require_auth)
):
    """
    Clock in at a site

    **Process:**
    1. Site must be one of the worker's assigned sites
    2. Coordinate must be inside the site boundary
    3. Worker must not already have an open session

    **Errors:**
    - 403: Not assigned to site, or outside boundary
    - 409: A session is already open
    - 503: Boundary lookup failed, try again
    """
    opened = attendance_service.open_session(
        db,
        current_user["user_id"],
        current_user["company_id"],
        request.site_id,
        request.lat,
        request.lon,
        request.accuracy_m
    )

    return DataResponse(
        success=True,
        message="Clocked in successfully",
        data=opened
    )


@router.post(
    "/sessions/{as_id}/renew",
    response_model=DataResponse[LeaseResponse],
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_min_role_level(1))]
)
def renew_lease(
    as_id: int,
    request: LocationRequest,
    db: Session = Depends(get_db),
    current_user: dict = Depends(require_auth)
):
    """
    Renew the session lease (heartbeat)

    **Errors:**
    - 403: Outside boundary; the session has been closed (auto_geofence_exit)
    - 404: No active session
    """
    lease = attendance_service.renew_lease(db, as_id, current_user["user_id"], request.lat, request.lon)

    return DataResponse(
        success=True,
        message="Lease renewed successfully",
        data=lease
    )


@router.post(
    "/sessions/{as_id}/clock-out",
    response_model=DataResponse[ClockOutResponse],
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_min_role_level(1))]
)
async def clock_out(
    as_id: int,
    request: LocationRequest,
    db: Session = Depends(get_db),
    current_user: dict = Depends(require_auth)
):
    """
    Clock out of an open session

    **Errors:**
    - 404: No active session
    - 409: Session was already closed (exit report or expiry)
    """
    closed = attendance_service.clock_out(db, as_id, current_user["user_id"], request.lat, request.lon)

    return DataResponse(
        success=True,
        message="Clocked out successfully",
        data=ClockOutResponse(
            as_id=closed.as_id,
            as_checkin_at=closed.as_checkin_at,
            as_checkout_at=closed.as_checkout_at,
            as_checkout_reason=closed.as_checkout_reason
        )
    )


@router.post(
    "/sessions/{as_id}/exit",
    response_model=DataResponse[ExitReportResponse],
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_min_role_level(1))]
)
async def report_exit(
    as_id: int,
    request: LocationRequest,
    db: Session = Depends(get_db),
    current_user: dict = Depends(require_auth)
):
    """
    Report that the device left the site boundary

    Always 200: ``data.success`` is false when the session was unknown or
    already closed, which is an expected outcome of racing reports.
    """
    report = attendance_service.report_boundary_exit(
        db, as_id, current_user["user_id"], request.lat, request.lon
    )

    return DataResponse(
        success=True,
        message="Exit report recorded" if report.success else "No active session to close",
        data=report
    )


@router.get(
    "/sessions/me/current",
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_min_role_level(1))]
)
async def get_my_current_session(
    db: Session = Depends(get_db),
    current_user: dict = Depends(require_auth)
):
    """
    Get current user's open session

    **Response:**
    - Session details if one is open
    - Empty response otherwise
    """
    session_data = attendance_service.get_current_session(db, current_user["user_id"])

    response = DataResponse(
        success=True,
        message="Current session retrieved successfully",
        data=session_data
    )

    return encrypt_response_data(response, settings)


@router.get(
    "/sessions/me",
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_min_role_level(1))]
)
async def get_my_sessions(
    limit: int = Query(50, ge=1, le=100, description="Maximum records to return"),
    offset: int = Query(0, ge=0, description="Number of records to skip"),
    db: Session = Depends(get_db),
    current_user: dict = Depends(require_auth)
):
    """
    Get current user's session history, newest first
    """
    user_id = current_user["user_id"]

    sessions = attendance_service.get_user_sessions(db, user_id, offset, limit)
    total = attendance_service.count_user_sessions(db, user_id)

    response = PaginationResponse(
        success=True,
        message="Sessions retrieved successfully",
        data=sessions,
        total=total,
        page=offset // limit + 1,
        size=limit,
        pages=(total + limit - 1) // limit
    )

    return encrypt_response_data(response, settings)


@router.get(
    "/sessions",
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_min_role_level(50))]
)
async def get_sessions_admin(
    user_id: Optional[int] = Query(None, description="Filter by user ID"),
    site_id: Optional[str] = Query(None, description="Filter by site ID"),
    date_from: Optional[str] = Query(None, description="Start date (YYYY-MM-DD)"),
    date_to: Optional[str] = Query(None, description="End date (YYYY-MM-DD)"),
    is_open: Optional[bool] = Query(None, description="Filter open (true) or closed (false) sessions"),
    reason: Optional[str] = Query(
        None,
        pattern="^(manual|auto_geofence_exit|auto_heartbeat_expired)$",
        description="Filter by checkout reason"
    ),
    limit: int = Query(100, ge=1, le=1000, description="Maximum records to return"),
    offset: int = Query(0, ge=0, description="Number of records to skip"),
    sort: str = Query("desc", pattern="^(asc|desc)$", description="Sort order by check-in time"),
    db: Session = Depends(get_db),
    current_user: dict = Depends(require_auth)
):
    """
    Get company attendance sessions (Manager and above)
    """
    parsed_date_from = _parse_date(date_from, "date_from")
    parsed_date_to = _parse_date(date_to, "date_to")
    company_id = current_user["company_id"]

    sessions = attendance_service.get_sessions_admin(
        db, company_id, user_id, site_id, parsed_date_from, parsed_date_to, is_open, reason, offset, limit, sort
    )

    total = attendance_service.count_sessions_admin(
        db, company_id, user_id, site_id, parsed_date_from, parsed_date_to, is_open, reason
    )

    response = PaginationResponse(
        success=True,
        message="Sessions retrieved successfully",
        data=sessions,
        total=total,
        page=offset // limit + 1,
        size=limit,
        pages=(total + limit - 1) // limit
    )

    return encrypt_response_data(response, settings)


@router.get(
    "/geofence-events",
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_min_role_level(50))]
)
async def get_geofence_events(
    user_id: Optional[int] = Query(None, description="Filter by user ID"),
    site_id: Optional[str] = Query(None, description="Filter by site ID"),
    session_id: Optional[int] = Query(None, description="Filter by session ID"),
    date_from: Optional[str] = Query(None, description="Start date (YYYY-MM-DD)"),
    date_to: Optional[str] = Query(None, description="End date (YYYY-MM-DD)"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum records to return"),
    offset: int = Query(0, ge=0, description="Number of records to skip"),
    db: Session = Depends(get_db),
    current_user: dict = Depends(require_auth)
):
    """
    Get reported boundary exits (Manager and above)
    """
    parsed_date_from = _parse_date(date_from, "date_from")
    parsed_date_to = _parse_date(date_to, "date_to")
    company_id = current_user["company_id"]

    events = attendance_service.get_geofence_events(
        db, company_id, user_id, site_id, session_id, parsed_date_from, parsed_date_to, offset, limit
    )
    total = attendance_service.count_geofence_events(
        db, company_id, user_id, site_id, session_id, parsed_date_from, parsed_date_to
    )

    response = PaginationResponse(
        success=True,
        message="Geofence events retrieved successfully",
        data=events,
        total=total,
        page=offset // limit + 1,
        size=limit,
        pages=(total + limit - 1) // limit
    )

    return encrypt_response_data(response, settings)
