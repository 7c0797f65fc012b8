"""
Site Repository - Data access layer for sites
"""
from typing import Optional, List, Dict, Any
from sqlalchemy.orm import Session
from sqlalchemy import func

from atams.db import BaseRepository
from app.models.site import Site


class SiteRepository(BaseRepository[Site]):
    def __init__(self):
        super().__init__(Site)

    def get_by_id(self, db: Session, site_id: str) -> Optional[Site]:
        """Get site by ID using ORM"""
        return db.query(Site).filter(Site.si_id == site_id).first()

    def get_sites_with_search(
        self,
        db: Session,
        company_id: str,
        search: str = "",
        skip: int = 0,
        limit: int = 100
    ) -> List[Site]:
        """Get company sites with optional name search"""
        query = db.query(Site).filter(Site.si_company_id == company_id)

        if search:
            query = query.filter(Site.si_name.ilike(f"%{search}%"))

        return query.order_by(Site.si_name.asc()).offset(skip).limit(limit).all()

    def count_sites_with_search(self, db: Session, company_id: str, search: str = "") -> int:
        query = db.query(func.count(Site.si_id)).filter(Site.si_company_id == company_id)
        if search:
            query = query.filter(Site.si_name.ilike(f"%{search}%"))
        return query.scalar()

    def check_site_exists(self, db: Session, site_id: str) -> bool:
        return db.query(Site.si_id).filter(Site.si_id == site_id).first() is not None

    def apply_patch(self, db: Session, site: Site, changes: Dict[str, Any]) -> Site:
        """Write an already validated set of column changes"""
        return self.update(db, site, changes)

    def delete_by_id(self, db: Session, site_id: str) -> bool:
        """Delete site by ID and return success status"""
        site = self.get_by_id(db, site_id)
        if site:
            db.delete(site)
            db.commit()
            return True
        return False
