"""
Sites Endpoints - Site boundaries and worker assignments
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.services.site_service import SiteService
from app.schemas import (
    Site,
    SiteCreate,
    SitePatch,
    SiteAssignment,
    SiteAssignmentCreate,
    DataResponse,
    PaginationResponse
)
from app.api.deps import require_auth, require_min_role_level
from app.core.config import settings
from atams.encryption import encrypt_response_data

router = APIRouter()
site_service = SiteService()


@router.get(
    "/",
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_min_role_level(50))]
)
async def list_sites(
    search: str = Query("", description="Search sites by name"),
    skip: int = Query(0, ge=0, description="Number of records to skip"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum records to return"),
    db: Session = Depends(get_db),
    current_user: dict = Depends(require_auth)
):
    """
    Get company sites with pagination and search

    **Authorization:**
    - Requires role level >= 50 (Manager or above)
    """
    company_id = current_user["company_id"]
    sites = site_service.list_sites(db, company_id, search=search, skip=skip, limit=limit)
    total = site_service.count_sites(db, company_id, search=search)

    response = PaginationResponse(
        success=True,
        message="Sites retrieved successfully",
        data=sites,
        total=total,
        page=skip // limit + 1,
        size=limit,
        pages=(total + limit - 1) // limit
    )

    return encrypt_response_data(response, settings)


@router.get(
    "/{si_id}",
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_min_role_level(50))]
)
async def get_site(
    si_id: str,
    db: Session = Depends(get_db),
    current_user: dict = Depends(require_auth)
):
    """
    Get single site by ID

    **Authorization:**
    - Requires role level >= 50 (Manager or above)
    """
    site = site_service.get_site(db, current_user["company_id"], si_id)

    response = DataResponse(
        success=True,
        message="Site retrieved successfully",
        data=site
    )

    return encrypt_response_data(response, settings)


@router.post(
    "/",
    response_model=DataResponse[Site],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_min_role_level(100))]
)
async def create_site(
    site: SiteCreate,
    db: Session = Depends(get_db),
    current_user: dict = Depends(require_auth)
):
    """
    Create new site

    **Authorization:**
    - Requires role level >= 100 (Admin)

    **Validation:**
    - si_id: required, unique, max 50 characters
    - si_name: required
    - si_geo_fence: required, circle or polygon
    """
    new_site = site_service.create_site(db, current_user["company_id"], site)

    return DataResponse(
        success=True,
        message="Site created successfully",
        data=new_site
    )


@router.patch(
    "/{si_id}",
    response_model=DataResponse[Site],
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_min_role_level(100))]
)
async def patch_site(
    si_id: str,
    patch: SitePatch,
    db: Session = Depends(get_db),
    current_user: dict = Depends(require_auth)
):
    """
    Change a site's name and/or boundary

    **Authorization:**
    - Requires role level >= 100 (Admin)

    **Patchable fields:**
    - si_name: Site name
    - si_geo_fence: Replacement boundary (cannot be removed)
    """
    updated_site = site_service.patch_site(db, current_user["company_id"], si_id, patch)

    return DataResponse(
        success=True,
        message="Site updated successfully",
        data=updated_site
    )


@router.delete(
    "/{si_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_min_role_level(100))]
)
async def delete_site(
    si_id: str,
    db: Session = Depends(get_db),
    current_user: dict = Depends(require_auth)
):
    """
    Delete site

    **Note:**
    - Deletion will fail if site is referenced by attendance sessions
    """
    site_service.delete_site(db, current_user["company_id"], si_id)

    # 204 returns no content


@router.get(
    "/{si_id}/assignments",
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_min_role_level(50))]
)
async def list_assignments(
    si_id: str,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
    current_user: dict = Depends(require_auth)
):
    """Workers assigned to a site"""
    assignments = site_service.list_assignments(db, current_user["company_id"], si_id, skip, limit)

    response = DataResponse(
        success=True,
        message="Assignments retrieved successfully",
        data=assignments
    )

    return encrypt_response_data(response, settings)


@router.post(
    "/{si_id}/assignments",
    response_model=DataResponse[SiteAssignment],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_min_role_level(100))]
)
async def assign_worker(
    si_id: str,
    payload: SiteAssignmentCreate,
    db: Session = Depends(get_db),
    current_user: dict = Depends(require_auth)
):
    """Assign a worker to a site"""
    assignment = site_service.assign_worker(db, current_user["company_id"], si_id, payload.sa_user_id)

    return DataResponse(
        success=True,
        message="Worker assigned successfully",
        data=assignment
    )


@router.delete(
    "/{si_id}/assignments/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_min_role_level(100))]
)
async def unassign_worker(
    si_id: str,
    user_id: int,
    db: Session = Depends(get_db),
    current_user: dict = Depends(require_auth)
):
    """Remove a worker's assignment; open sessions are not affected"""
    site_service.unassign_worker(db, current_user["company_id"], si_id, user_id)
