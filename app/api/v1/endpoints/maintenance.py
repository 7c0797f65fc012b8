"""
Maintenance Endpoints - Operational triggers for background jobs
"""
from fastapi import APIRouter, Depends, status

from app.db.session import SessionLocal
from app.services.expiry_sweeper import ExpirySweeper
from app.schemas import DataResponse, SweepResult
from app.api.deps import require_min_role_level

router = APIRouter()
expiry_sweeper = ExpirySweeper(SessionLocal)


@router.post(
    "/sweep-expired",
    response_model=DataResponse[SweepResult],
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_min_role_level(100))]
)
def sweep_expired():
    """
    Run one expiry sweep now

    **Authorization:**
    - Requires role level >= 100 (Admin)

    **Use case:**
    - Close lapsed sessions when the in-process sweeper is disabled
      (e.g. driven by an external scheduler instead)
    """
    result = expiry_sweeper.tick()

    return DataResponse(
        success=True,
        message=f"Closed {result.closed} expired sessions",
        data=result
    )
