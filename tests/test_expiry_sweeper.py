"""Expiry sweeper ticks against a fake clock."""
from datetime import timedelta

from sqlalchemy.exc import OperationalError

from app.models import AttendanceSession, CheckoutReason, SiteAssignment
from app.services.attendance_service import AttendanceService
from app.services.expiry_sweeper import ExpirySweeper, SWEEP_JOB_ID
from tests.conftest import COMPANY_ID, INSIDE, OTHER_WORKER_ID, SITE_ID, WORKER_ID, FakeOracle


def _sweeper(session_factory, service, clock, **kwargs):
    return ExpirySweeper(session_factory, attendance_service=service, clock=clock, **kwargs)


def test_tick_with_nothing_lapsed(session_factory, open_session, service, clock):
    clock.advance(hours=1, minutes=59)

    result = _sweeper(session_factory, service, clock).tick()

    assert result.scanned == 0
    assert result.closed == 0


def test_tick_closes_lapsed_session_within_one_interval(db, session_factory, open_session, service, clock):
    clock.advance(hours=2, seconds=60)

    result = _sweeper(session_factory, service, clock).tick()

    assert result.scanned == 1
    assert result.closed == 1
    db.expire_all()
    row = db.get(AttendanceSession, open_session)
    assert row.as_is_open is False
    assert row.as_checkout_reason == CheckoutReason.AUTO_HEARTBEAT_EXPIRED
    assert row.as_checkout_at == clock.now
    assert (row.as_checkout_lat, row.as_checkout_lon) == INSIDE


def test_overlapping_ticks_close_once(db, session_factory, open_session, service, clock):
    clock.advance(hours=3)
    sweeper = _sweeper(session_factory, service, clock)

    first = sweeper.tick()
    second = sweeper.tick()

    assert first.closed == 1
    assert second.scanned == 0


def test_tick_skips_session_closed_by_racing_clock_out(db, session_factory, open_session, service, clock, monkeypatch):
    clock.advance(hours=3)
    sweeper = _sweeper(session_factory, service, clock)
    original = service.close_session

    def clock_out_first(db_, session_id, user_id, reason, *args, **kwargs):
        # the worker clocks out after the scan, before the sweep's close
        original(db_, session_id, user_id, CheckoutReason.MANUAL, *INSIDE)
        return original(db_, session_id, user_id, reason, *args, **kwargs)

    monkeypatch.setattr(service, "close_session", clock_out_first)

    result = sweeper.tick()

    assert result.scanned == 1
    assert result.closed == 0
    assert result.skipped == 1
    db.expire_all()
    assert db.get(AttendanceSession, open_session).as_checkout_reason == CheckoutReason.MANUAL


def test_tick_counts_store_failures_and_continues(db, session_factory, site, clock, monkeypatch):
    service = AttendanceService(geofence=FakeOracle(inside=True), clock=clock, lease_duration=timedelta(hours=2))
    db.add(SiteAssignment(sa_user_id=OTHER_WORKER_ID, sa_company_id=COMPANY_ID, sa_site_id=SITE_ID))
    db.commit()
    first = service.open_session(db, WORKER_ID, COMPANY_ID, SITE_ID, *INSIDE).as_id
    second = service.open_session(db, OTHER_WORKER_ID, COMPANY_ID, SITE_ID, *INSIDE).as_id
    clock.advance(hours=3)

    repo = service.session_repo
    original = repo.close_if_open

    def flaky(db_, session_id, *args, **kwargs):
        if session_id == first:
            raise OperationalError("UPDATE attendance_sessions", {}, Exception("connection reset"))
        return original(db_, session_id, *args, **kwargs)

    monkeypatch.setattr(repo, "close_if_open", flaky)

    result = _sweeper(session_factory, service, clock, batch_size=1).tick()

    assert result.scanned == 2
    assert result.failed == 1
    assert result.closed == 1
    db.expire_all()
    assert db.get(AttendanceSession, first).as_is_open is True
    assert db.get(AttendanceSession, second).as_is_open is False


def test_tick_drains_backlog_larger_than_batch(session_factory, db, site, clock):
    service = AttendanceService(geofence=FakeOracle(inside=True), clock=clock, lease_duration=timedelta(hours=2))
    db.add(SiteAssignment(sa_user_id=OTHER_WORKER_ID, sa_company_id=COMPANY_ID, sa_site_id=SITE_ID))
    db.commit()
    service.open_session(db, WORKER_ID, COMPANY_ID, SITE_ID, *INSIDE)
    clock.advance(minutes=10)
    service.open_session(db, OTHER_WORKER_ID, COMPANY_ID, SITE_ID, *INSIDE)
    clock.advance(hours=3)

    result = _sweeper(session_factory, service, clock, batch_size=1).tick()

    assert result.scanned == 2
    assert result.closed == 2
    assert db.query(AttendanceSession).filter(AttendanceSession.as_is_open.is_(True)).count() == 0


def test_start_schedules_single_interval_job(session_factory, service, clock):
    sweeper = _sweeper(session_factory, service, clock, interval_seconds=60)

    scheduler = sweeper.start()
    try:
        job = scheduler.get_job(SWEEP_JOB_ID)
        assert job is not None
        assert job.trigger.interval == timedelta(seconds=60)
        assert job.max_instances == 1
        assert sweeper.start() is scheduler
    finally:
        sweeper.shutdown()

    assert sweeper._scheduler is None

