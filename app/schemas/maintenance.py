"""
Maintenance Schemas
"""
from pydantic import BaseModel


class SweepResult(BaseModel):
    """Outcome of one expiry sweep"""
    scanned: int = 0
    closed: int = 0
    skipped: int = 0
    failed: int = 0
