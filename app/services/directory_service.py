"""
Directory Service - Read-only worker/site authorization for the attendance engine
"""
from sqlalchemy.orm import Session

from app.repositories.site_repository import SiteRepository
from app.repositories.site_assignment_repository import SiteAssignmentRepository


class DirectoryService:
    def __init__(self) -> None:
        self.site_repo = SiteRepository()
        self.assignment_repo = SiteAssignmentRepository()

    def is_assigned(self, db: Session, user_id: int, company_id: str, site_id: str) -> bool:
        """True if the worker may clock in at the site within their company"""
        site = self.site_repo.get_by_id(db, site_id)
        if not site or site.si_company_id != company_id:
            return False
        return self.assignment_repo.is_assigned(db, user_id, company_id, site_id)
