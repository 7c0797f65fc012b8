"""
Site Service - Business logic for site and assignment management
"""
from typing import List
from sqlalchemy.orm import Session

from app.repositories.site_repository import SiteRepository
from app.repositories.site_assignment_repository import SiteAssignmentRepository
from app.schemas.site import SiteCreate, SitePatch, Site, SiteAssignment
from atams.exceptions import (
    NotFoundException,
    BadRequestException,
    ConflictException,
)
from atams.logging import get_logger

logger = get_logger(__name__)


class SiteService:
    def __init__(self) -> None:
        self.repo = SiteRepository()
        self.assignment_repo = SiteAssignmentRepository()

    def _get_company_site(self, db: Session, company_id: str, si_id: str):
        site = self.repo.get_by_id(db, si_id)
        if not site or site.si_company_id != company_id:
            raise NotFoundException("Site not found")
        return site

    def list_sites(self, db: Session, company_id: str, search: str = "", skip: int = 0, limit: int = 100) -> List[Site]:
        sites = self.repo.get_sites_with_search(db, company_id, search=search, skip=skip, limit=limit)
        return [Site.model_validate(s) for s in sites]

    def count_sites(self, db: Session, company_id: str, search: str = "") -> int:
        return self.repo.count_sites_with_search(db, company_id, search=search)

    def get_site(self, db: Session, company_id: str, si_id: str) -> Site:
        return Site.model_validate(self._get_company_site(db, company_id, si_id))

    def create_site(self, db: Session, company_id: str, payload: SiteCreate) -> Site:
        if payload.si_geo_fence is None:
            raise BadRequestException("si_geo_fence is required")
        if self.repo.check_site_exists(db, payload.si_id):
            raise ConflictException("Site with this ID already exists")

        obj = self.repo.create(db, {
            "si_id": payload.si_id,
            "si_company_id": company_id,
            "si_name": payload.si_name,
            "si_geo_fence": payload.si_geo_fence.to_storage(),
        })
        logger.info(f"Site {obj.si_id} created", extra={"extra_data": {"si_id": obj.si_id}})
        return Site.model_validate(obj)

    def patch_site(self, db: Session, company_id: str, si_id: str, patch: SitePatch) -> Site:
        obj = self._get_company_site(db, company_id, si_id)
        obj = self.repo.apply_patch(db, obj, patch.to_changes())
        return Site.model_validate(obj)

    def delete_site(self, db: Session, company_id: str, si_id: str) -> None:
        # rely on FK constraints to prevent deletion if referenced by sessions
        self._get_company_site(db, company_id, si_id)
        self.repo.delete_by_id(db, si_id)
        return None

    def list_assignments(self, db: Session, company_id: str, si_id: str, skip: int = 0, limit: int = 100) -> List[SiteAssignment]:
        self._get_company_site(db, company_id, si_id)
        rows = self.assignment_repo.get_site_assignments(db, si_id, skip=skip, limit=limit)
        return [SiteAssignment.model_validate(r) for r in rows]

    def assign_worker(self, db: Session, company_id: str, si_id: str, user_id: int) -> SiteAssignment:
        self._get_company_site(db, company_id, si_id)
        obj = self.assignment_repo.assign(db, user_id, company_id, si_id)
        if obj is None:
            raise ConflictException("Worker is already assigned to this site")
        return SiteAssignment.model_validate(obj)

    def unassign_worker(self, db: Session, company_id: str, si_id: str, user_id: int) -> None:
        self._get_company_site(db, company_id, si_id)
        if not self.assignment_repo.unassign(db, user_id, si_id):
            raise NotFoundException("Assignment not found")
        return None
