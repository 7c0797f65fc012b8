from fastapi import APIRouter
from app.api.v1.endpoints import attendance, sites, maintenance

api_router = APIRouter()

# Worker-facing session lifecycle
api_router.include_router(attendance.router, prefix="/attendance", tags=["Attendance Sessions"])

# Admin surfaces
api_router.include_router(sites.router, prefix="/sites", tags=["Sites & Assignments"])
api_router.include_router(maintenance.router, prefix="/maintenance", tags=["Maintenance"])
