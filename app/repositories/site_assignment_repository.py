"""
Site Assignment Repository - Worker to site assignments
"""
from typing import Optional, List
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from sqlalchemy import and_

from atams.db import BaseRepository
from app.models.site_assignment import SiteAssignment


class SiteAssignmentRepository(BaseRepository[SiteAssignment]):
    def __init__(self):
        super().__init__(SiteAssignment)

    def is_assigned(self, db: Session, user_id: int, company_id: str, site_id: str) -> bool:
        return db.query(SiteAssignment.sa_id).filter(
            and_(
                SiteAssignment.sa_user_id == user_id,
                SiteAssignment.sa_company_id == company_id,
                SiteAssignment.sa_site_id == site_id
            )
        ).first() is not None

    def get_site_assignments(self, db: Session, site_id: str, skip: int = 0, limit: int = 100) -> List[SiteAssignment]:
        return db.query(SiteAssignment).filter(
            SiteAssignment.sa_site_id == site_id
        ).order_by(SiteAssignment.sa_user_id.asc()).offset(skip).limit(limit).all()

    def assign(self, db: Session, user_id: int, company_id: str, site_id: str) -> Optional[SiteAssignment]:
        """
        Assign worker to site.
        Returns None if the assignment already exists.
        """
        try:
            return self.create(db, {
                "sa_user_id": user_id,
                "sa_company_id": company_id,
                "sa_site_id": site_id,
            })
        except IntegrityError:
            db.rollback()
            return None

    def unassign(self, db: Session, user_id: int, site_id: str) -> bool:
        deleted = db.query(SiteAssignment).filter(
            and_(
                SiteAssignment.sa_user_id == user_id,
                SiteAssignment.sa_site_id == site_id
            )
        ).delete(synchronize_session=False)
        db.commit()
        return deleted > 0
