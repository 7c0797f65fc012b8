"""HTTP adapter: routing, auth and error mapping."""
import asyncio
from datetime import datetime, timezone

from app.api.v1.endpoints import attendance, maintenance
from app.core.exceptions import BoundaryLookupFailed
from app.services.geofence_service import RetryingGeofenceOracle, SiteGeofenceOracle
from app.services.expiry_sweeper import ExpirySweeper
from tests.conftest import COMPANY_ID, INSIDE, OUTSIDE, OTHER_COMPANY_ID, OTHER_WORKER_ID, SITE_ID, auth_headers

ADMIN = auth_headers(user_id=1, role="admin")
MANAGER = auth_headers(user_id=2, role="manager")
WORKER = auth_headers()


def _clock_in(client, lat_lon=INSIDE, headers=WORKER):
    return client.post(
        "/api/v1/attendance/sessions",
        json={"site_id": SITE_ID, "lat": lat_lon[0], "lon": lat_lon[1], "accuracy_m": 10},
        headers=headers,
    )


def test_root(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["name"] == "site-attendance"


def test_requires_token(client, site):
    response = client.post("/api/v1/attendance/sessions", json={"site_id": SITE_ID, "lat": 0, "lon": 0})

    assert response.status_code == 401
    assert response.json()["success"] is False


def test_invalid_token(client, site):
    response = client.get(
        "/api/v1/attendance/sessions/me/current",
        headers={"Authorization": "Bearer not-a-token"},
    )

    assert response.status_code == 401


def test_clock_in_renew_clock_out(client, site):
    opened = _clock_in(client)
    assert opened.status_code == 201
    session_id = opened.json()["data"]["as_id"]

    renewed = client.post(
        f"/api/v1/attendance/sessions/{session_id}/renew",
        json={"lat": INSIDE[0], "lon": INSIDE[1]},
        headers=WORKER,
    )
    assert renewed.status_code == 200
    assert renewed.json()["data"]["as_id"] == session_id

    current = client.get("/api/v1/attendance/sessions/me/current", headers=WORKER)
    assert current.json()["data"]["as_id"] == session_id

    closed = client.post(
        f"/api/v1/attendance/sessions/{session_id}/clock-out",
        json={"lat": INSIDE[0], "lon": INSIDE[1]},
        headers=WORKER,
    )
    assert closed.status_code == 200
    assert closed.json()["data"]["as_checkout_reason"] == "manual"

    again = client.post(
        f"/api/v1/attendance/sessions/{session_id}/clock-out",
        json={"lat": INSIDE[0], "lon": INSIDE[1]},
        headers=WORKER,
    )
    assert again.status_code == 409
    assert again.json()["details"]["error_code"] == "ALREADY_CLOSED"


def test_clock_in_twice_is_conflict(client, site):
    assert _clock_in(client).status_code == 201

    response = _clock_in(client)

    assert response.status_code == 409
    assert response.json()["details"]["error_code"] == "ALREADY_OPEN"


def test_clock_in_outside_is_forbidden(client, site):
    response = _clock_in(client, lat_lon=OUTSIDE)

    assert response.status_code == 403
    assert response.json()["details"]["error_code"] == "OUTSIDE_BOUNDARY"


def test_clock_in_unassigned_is_forbidden(client, site):
    response = _clock_in(client, headers=auth_headers(user_id=OTHER_WORKER_ID))

    assert response.status_code == 403
    assert response.json()["details"]["error_code"] == "NOT_ASSIGNED"


def test_clock_in_unknown_site_is_not_assigned(client, site):
    response = client.post(
        "/api/v1/attendance/sessions",
        json={"site_id": "SITE-GONE", "lat": INSIDE[0], "lon": INSIDE[1]},
        headers=WORKER,
    )

    assert response.status_code == 403
    assert response.json()["details"]["error_code"] == "NOT_ASSIGNED"


def test_renew_outside_reports_closed_session(client, site):
    session_id = _clock_in(client).json()["data"]["as_id"]

    response = client.post(
        f"/api/v1/attendance/sessions/{session_id}/renew",
        json={"lat": OUTSIDE[0], "lon": OUTSIDE[1]},
        headers=WORKER,
    )

    assert response.status_code == 403
    details = response.json()["details"]
    assert details["session_closed"] is True
    assert details["as_id"] == session_id

    current = client.get("/api/v1/attendance/sessions/me/current", headers=WORKER)
    assert current.json()["data"]["as_id"] is None


def test_renew_unknown_session_is_not_found(client, site):
    response = client.post(
        "/api/v1/attendance/sessions/12345/renew",
        json={"lat": INSIDE[0], "lon": INSIDE[1]},
        headers=WORKER,
    )

    assert response.status_code == 404
    assert response.json()["details"]["error_code"] == "NO_ACTIVE_SESSION"


def test_exit_report_is_always_ok(client, site):
    session_id = _clock_in(client).json()["data"]["as_id"]
    body = {"lat": OUTSIDE[0], "lon": OUTSIDE[1]}

    first = client.post(f"/api/v1/attendance/sessions/{session_id}/exit", json=body, headers=WORKER)
    second = client.post(f"/api/v1/attendance/sessions/{session_id}/exit", json=body, headers=WORKER)

    assert first.status_code == 200
    assert first.json()["data"]["success"] is True
    assert second.status_code == 200
    assert second.json()["data"]["success"] is False

    events = client.get("/api/v1/attendance/geofence-events", headers=MANAGER)
    assert events.status_code == 200
    assert events.json()["total"] == 2


def test_history_and_admin_listing(client, site):
    session_id = _clock_in(client).json()["data"]["as_id"]

    mine = client.get("/api/v1/attendance/sessions/me", headers=WORKER)
    assert mine.status_code == 200
    assert [s["as_id"] for s in mine.json()["data"]] == [session_id]

    forbidden = client.get("/api/v1/attendance/sessions", headers=WORKER)
    assert forbidden.status_code == 403

    listing = client.get("/api/v1/attendance/sessions", params={"is_open": "true"}, headers=MANAGER)
    assert listing.status_code == 200
    assert listing.json()["total"] == 1

    other_company = client.get(
        "/api/v1/attendance/sessions", headers=auth_headers(user_id=3, company_id=OTHER_COMPANY_ID, role="admin")
    )
    assert other_company.json()["total"] == 0


def test_admin_listing_rejects_bad_dates(client, site):
    response = client.get("/api/v1/attendance/sessions", params={"date_from": "02-03-2026"}, headers=MANAGER)

    assert response.status_code == 400


def test_site_crud_and_assignments(client):
    created = client.post(
        "/api/v1/sites/",
        json={
            "si_id": "SITE-DEPOT",
            "si_name": "Depot",
            "si_geo_fence": {"type": "circle", "center": [-6.3, 106.9], "radius_m": 200},
        },
        headers=ADMIN,
    )
    assert created.status_code == 201
    assert created.json()["data"]["si_company_id"] == COMPANY_ID

    duplicate = client.post(
        "/api/v1/sites/",
        json={"si_id": "SITE-DEPOT", "si_name": "Depot", "si_geo_fence": {"type": "circle", "center": [0, 0], "radius_m": 5}},
        headers=ADMIN,
    )
    assert duplicate.status_code == 409

    patched = client.patch("/api/v1/sites/SITE-DEPOT", json={"si_name": "North Depot"}, headers=ADMIN)
    assert patched.status_code == 200
    assert patched.json()["data"]["si_name"] == "North Depot"

    bad_patch = client.patch("/api/v1/sites/SITE-DEPOT", json={"si_company_id": "GLOBEX"}, headers=ADMIN)
    assert bad_patch.status_code == 422

    assigned = client.post("/api/v1/sites/SITE-DEPOT/assignments", json={"sa_user_id": 9}, headers=ADMIN)
    assert assigned.status_code == 201
    again = client.post("/api/v1/sites/SITE-DEPOT/assignments", json={"sa_user_id": 9}, headers=ADMIN)
    assert again.status_code == 409

    listed = client.get("/api/v1/sites/SITE-DEPOT/assignments", headers=MANAGER)
    assert [a["sa_user_id"] for a in listed.json()["data"]] == [9]

    assert client.delete("/api/v1/sites/SITE-DEPOT/assignments/9", headers=ADMIN).status_code == 204
    assert client.delete("/api/v1/sites/SITE-DEPOT/assignments/9", headers=ADMIN).status_code == 404

    hidden = client.get("/api/v1/sites/SITE-DEPOT", headers=auth_headers(user_id=3, company_id=OTHER_COMPANY_ID, role="admin"))
    assert hidden.status_code == 404

    assert client.delete("/api/v1/sites/SITE-DEPOT", headers=ADMIN).status_code == 204
    assert client.get("/api/v1/sites/SITE-DEPOT", headers=ADMIN).status_code == 404


def test_site_write_requires_admin(client):
    response = client.post(
        "/api/v1/sites/",
        json={"si_id": "SITE-X", "si_name": "X", "si_geo_fence": {"type": "circle", "center": [0, 0], "radius_m": 5}},
        headers=MANAGER,
    )

    assert response.status_code == 403


def test_maintenance_sweep(client, site, session_factory, monkeypatch):
    _clock_in(client)
    sweeper = ExpirySweeper(session_factory, clock=lambda: datetime(2100, 1, 1, tzinfo=timezone.utc))
    monkeypatch.setattr(maintenance, "expiry_sweeper", sweeper)

    forbidden = client.post("/api/v1/maintenance/sweep-expired", headers=MANAGER)
    assert forbidden.status_code == 403

    response = client.post("/api/v1/maintenance/sweep-expired", headers=ADMIN)
    assert response.status_code == 200
    assert response.json()["data"] == {"scanned": 1, "closed": 1, "skipped": 0, "failed": 0}


def _on_event_loop() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


class _FailsOnceOracle(SiteGeofenceOracle):
    def __init__(self):
        super().__init__()
        self.failed = False

    def is_inside(self, db, site_id, lat, lon):
        if not self.failed:
            self.failed = True
            raise BoundaryLookupFailed(site_id)
        return super().is_inside(db, site_id, lat, lon)


def test_clock_in_backoff_runs_off_the_event_loop(client, site, monkeypatch):
    sleeps = []
    oracle = RetryingGeofenceOracle(_FailsOnceOracle(), attempts=2, sleep=lambda s: sleeps.append(_on_event_loop()))
    monkeypatch.setattr(attendance.attendance_service, "geofence", oracle)

    response = _clock_in(client)

    assert response.status_code == 201
    assert sleeps == [False]


def test_maintenance_sweep_runs_off_the_event_loop(client, site, session_factory, monkeypatch):
    ticks = []

    def clock():
        ticks.append(_on_event_loop())
        return datetime(2100, 1, 1, tzinfo=timezone.utc)

    monkeypatch.setattr(maintenance, "expiry_sweeper", ExpirySweeper(session_factory, clock=clock))

    response = client.post("/api/v1/maintenance/sweep-expired", headers=ADMIN)

    assert response.status_code == 200
    assert ticks and not any(ticks)
