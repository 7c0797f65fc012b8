"""
Shared fixtures.

Every test gets its own file-backed SQLite database. The ``attendance``
schema is mapped to SQLite's default schema.
"""
import os

# must be set before any app module reads settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ATLAS_APP_CODE"] = "site-attendance-test"
os.environ["SWEEPER_ENABLED"] = "false"
os.environ["LOGGING_ENABLED"] = "false"
os.environ["ENCRYPTION_ENABLED"] = "false"
os.environ["AUTH_JWT_SECRET"] = "test-secret-with-enough-length-for-hs256"

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from atams.db import Base
from app import models  # noqa: F401  registers tables on Base.metadata
from app.models import Site, SiteAssignment
from app.services.attendance_service import AttendanceService
from app.services.geofence_service import GeofenceOracle
from app.services.jwt_service import JwtService

COMPANY_ID = "ACME"
OTHER_COMPANY_ID = "GLOBEX"
WORKER_ID = 7
OTHER_WORKER_ID = 8
SITE_ID = "SITE-HQ"

# Circle of 150 m around the HQ gate
SITE_CENTER = (-6.2000, 106.8000)
INSIDE = (-6.2005, 106.8003)
OUTSIDE = (-6.2100, 106.8000)

T0 = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeOracle(GeofenceOracle):
    """Answers containment from a fixed value, or raises it"""

    def __init__(self, inside=True):
        self.inside = inside
        self.calls = 0

    def is_inside(self, db, site_id, lat, lon):
        self.calls += 1
        if isinstance(self.inside, Exception):
            raise self.inside
        return self.inside


def make_engine(path):
    engine = create_engine(
        f"sqlite:///{path}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    return engine.execution_options(schema_translate_map={"attendance": None})


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(tmp_path / "attendance.db")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def site(db):
    obj = Site(
        si_id=SITE_ID,
        si_company_id=COMPANY_ID,
        si_name="Head Office",
        si_geo_fence={"type": "circle", "center": list(SITE_CENTER), "radius_m": 150},
    )
    db.add(obj)
    db.add(SiteAssignment(sa_user_id=WORKER_ID, sa_company_id=COMPANY_ID, sa_site_id=SITE_ID))
    db.commit()
    return obj


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def oracle():
    return FakeOracle(inside=True)


@pytest.fixture
def service(oracle, clock):
    return AttendanceService(geofence=oracle, clock=clock, lease_duration=timedelta(hours=2))


@pytest.fixture
def open_session(db, site, service):
    """Clock the default worker in at T0 and return the session id"""
    opened = service.open_session(db, WORKER_ID, COMPANY_ID, SITE_ID, *INSIDE, accuracy_m=12.0)
    return opened.as_id


@pytest.fixture
def client(session_factory):
    from app.main import app
    from app.db.session import get_db

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_headers(user_id=WORKER_ID, company_id=COMPANY_ID, role="worker"):
    token = JwtService().generate_token(user_id, company_id, role=role)
    return {"Authorization": f"Bearer {token}"}
