"""
Geofence Service - Containment checks against a site's stored boundary

The attendance engine only needs ``is_inside(db, site_id, lat, lon)``.
How the boundary is evaluated stays here, behind that one call.
"""
import math
import time
from typing import Callable, List, Sequence
from sqlalchemy.orm import Session
from sqlalchemy.exc import OperationalError

from app.repositories.site_repository import SiteRepository
from app.core.exceptions import BoundaryLookupFailed
from atams.logging import get_logger

logger = get_logger(__name__)

EARTH_RADIUS_M = 6371000


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate distance between two coordinates using Haversine formula

    Returns:
        float: Distance in meters
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    a = (math.sin(delta_lat / 2) ** 2 +
         math.cos(lat1_rad) * math.cos(lat2_rad) *
         math.sin(delta_lon / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def point_in_polygon(lat: float, lon: float, vertices: Sequence[Sequence[float]]) -> bool:
    """Even-odd ray cast; vertices are [lat, lon] pairs, ring may be open or closed"""
    inside = False
    count = len(vertices)
    j = count - 1
    for i in range(count):
        lat_i, lon_i = vertices[i][0], vertices[i][1]
        lat_j, lon_j = vertices[j][0], vertices[j][1]
        if (lon_i > lon) != (lon_j > lon):
            cross_lat = (lat_j - lat_i) * (lon - lon_i) / (lon_j - lon_i) + lat_i
            if lat < cross_lat:
                inside = not inside
        j = i
    return inside


class GeofenceOracle:
    """Containment capability consumed by the attendance engine"""

    def is_inside(self, db: Session, site_id: str, lat: float, lon: float) -> bool:
        raise NotImplementedError


class SiteGeofenceOracle(GeofenceOracle):
    """Evaluates the boundary stored in ``sites.si_geo_fence``"""

    def __init__(self) -> None:
        self.site_repo = SiteRepository()

    def is_inside(self, db: Session, site_id: str, lat: float, lon: float) -> bool:
        """
        Check a coordinate against the site boundary

        Raises:
            BoundaryLookupFailed: site or boundary unresolvable (not retryable),
                or the lookup itself failed (retryable)
        """
        try:
            site = self.site_repo.get_by_id(db, site_id)
        except OperationalError as e:
            db.rollback()
            raise BoundaryLookupFailed(site_id, f"Boundary lookup failed: {e.__class__.__name__}") from e

        if not site:
            raise BoundaryLookupFailed(site_id, "Site not found", transient=False)

        geo_fence = site.si_geo_fence
        if not geo_fence:
            raise BoundaryLookupFailed(site_id, "Geofence not configured for this site", transient=False)

        fence_type = geo_fence.get("type")
        if fence_type == "circle":
            center = geo_fence["center"]  # [lat, lon]
            distance = haversine_distance(center[0], center[1], lat, lon)
            return distance <= geo_fence["radius_m"]
        if fence_type == "polygon":
            return point_in_polygon(lat, lon, geo_fence["coordinates"])

        raise BoundaryLookupFailed(site_id, f"Unsupported geofence type: {fence_type}", transient=False)


class RetryingGeofenceOracle(GeofenceOracle):
    """
    Retries transient lookup failures with capped exponential backoff.

    Non-transient failures (unknown site, missing boundary) are raised
    on the first attempt. Once attempts run out the last failure is
    raised, so clock-in fails closed.
    """

    def __init__(
        self,
        inner: GeofenceOracle,
        attempts: int = 3,
        base_delay_ms: int = 100,
        max_delay_ms: int = 1000,
        sleep: Callable[[float], None] = time.sleep
    ) -> None:
        self.inner = inner
        self.attempts = max(1, attempts)
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self.sleep = sleep

    def backoff_delays(self) -> List[float]:
        """Delays in seconds between consecutive attempts"""
        return [
            min(self.max_delay_ms, self.base_delay_ms * (2 ** attempt)) / 1000.0
            for attempt in range(self.attempts - 1)
        ]

    def is_inside(self, db: Session, site_id: str, lat: float, lon: float) -> bool:
        delays = self.backoff_delays()
        for attempt in range(self.attempts):
            try:
                return self.inner.is_inside(db, site_id, lat, lon)
            except BoundaryLookupFailed as e:
                if not e.transient or attempt == self.attempts - 1:
                    raise
                logger.warning(
                    f"Geofence lookup failed for site {site_id}, retrying",
                    extra={"extra_data": {"si_id": site_id, "attempt": attempt + 1}}
                )
                self.sleep(delays[attempt])
        raise BoundaryLookupFailed(site_id)
