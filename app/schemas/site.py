"""
Site Schemas for request/response validation
"""
from typing import Optional, List, Literal, Dict, Any
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class GeoFence(BaseModel):
    """Geofence data structure (circle or polygon)"""
    type: Literal["circle", "polygon"] = "circle"
    center: Optional[List[float]] = None  # [latitude, longitude]
    radius_m: Optional[float] = None
    coordinates: Optional[List[List[float]]] = None  # [[latitude, longitude], ...]

    @model_validator(mode="after")
    def check_shape(self):
        if self.type == "circle":
            if self.center is None or len(self.center) != 2:
                raise ValueError("circle geofence needs center as [lat, lon]")
            if self.radius_m is None or self.radius_m <= 0:
                raise ValueError("circle geofence needs a positive radius_m")
        else:
            if not self.coordinates or len(self.coordinates) < 3:
                raise ValueError("polygon geofence needs at least 3 vertices")
            if any(len(vertex) != 2 for vertex in self.coordinates):
                raise ValueError("polygon vertices must be [lat, lon] pairs")
        return self

    def to_storage(self) -> Dict[str, Any]:
        if self.type == "circle":
            return {"type": "circle", "center": self.center, "radius_m": self.radius_m}
        return {"type": "polygon", "coordinates": self.coordinates}


class SiteBase(BaseModel):
    si_name: str = Field(min_length=1, max_length=255)
    si_geo_fence: Optional[GeoFence] = None


class SiteCreate(SiteBase):
    si_id: str = Field(min_length=1, max_length=50)


class SitePatch(BaseModel):
    """
    Site changes an admin may apply.

    Only these two fields are patchable. A boundary can be replaced but
    not removed, since clock-in requires one.
    """
    model_config = ConfigDict(extra="forbid")

    si_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    si_geo_fence: Optional[GeoFence] = None

    @field_validator("si_name")
    @classmethod
    def name_not_blank(cls, v):
        if v is not None and not v.strip():
            raise ValueError("si_name must not be blank")
        return v

    @model_validator(mode="after")
    def check_not_empty(self):
        if self.si_name is None and self.si_geo_fence is None:
            raise ValueError("patch must change si_name or si_geo_fence")
        return self

    def to_changes(self) -> Dict[str, Any]:
        changes: Dict[str, Any] = {}
        if self.si_name is not None:
            changes["si_name"] = self.si_name.strip()
        if self.si_geo_fence is not None:
            changes["si_geo_fence"] = self.si_geo_fence.to_storage()
        return changes


class SiteInDB(SiteBase):
    model_config = ConfigDict(from_attributes=True)

    si_id: str
    si_company_id: str
    si_created_at: datetime
    si_updated_at: Optional[datetime] = None


class Site(SiteInDB):
    pass


class SiteAssignmentCreate(BaseModel):
    sa_user_id: int = Field(gt=0)


class SiteAssignment(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    sa_id: int
    sa_user_id: int
    sa_company_id: str
    sa_site_id: str
    sa_created_at: datetime
