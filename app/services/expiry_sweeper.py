"""
Expiry Sweeper - Closes sessions whose lease lapsed without renewal

Each tick scans for open sessions with a lapsed lease and closes them
through AttendanceService.close_session with auto_heartbeat_expired.
Closes are conditional, so overlapping ticks or a tick racing a manual
clock-out or exit report only produce a harmless second attempt.
"""
from datetime import datetime
from typing import Callable, Optional
from sqlalchemy.exc import SQLAlchemyError
from apscheduler.schedulers.background import BackgroundScheduler

from app.models.attendance_session import CheckoutReason
from app.models.types import utcnow
from app.repositories.attendance_session_repository import AttendanceSessionRepository
from app.services.attendance_service import AttendanceService
from app.schemas.maintenance import SweepResult
from app.core.config import settings
from app.core.exceptions import AlreadyClosed, LeaseRenewed, NoActiveSession, StoreUnavailable
from atams.logging import get_logger

logger = get_logger(__name__)

SWEEP_JOB_ID = "attendance_expiry_sweep"


class ExpirySweeper:
    def __init__(
        self,
        session_factory: Callable,
        attendance_service: Optional[AttendanceService] = None,
        clock: Optional[Callable[[], datetime]] = None,
        interval_seconds: Optional[int] = None,
        batch_size: Optional[int] = None
    ) -> None:
        self.session_factory = session_factory
        self.clock = clock or utcnow
        self.attendance_service = attendance_service or AttendanceService(clock=self.clock)
        self.session_repo = AttendanceSessionRepository()
        self.interval_seconds = interval_seconds or settings.SWEEP_INTERVAL_SECONDS
        self.batch_size = batch_size or settings.SWEEP_BATCH_SIZE
        self._scheduler: Optional[BackgroundScheduler] = None

    def tick(self) -> SweepResult:
        """Run one sweep against the current clock"""
        now = self.clock()
        result = SweepResult()

        db = self.session_factory()
        try:
            after = None
            while True:
                expired = self.session_repo.get_expired_open_sessions(db, now, self.batch_size, after=after)
                if not expired:
                    break
                targets = [(s.as_id, s.as_user_id) for s in expired]
                after = (expired[-1].as_lease_expires_at, expired[-1].as_id)
                result.scanned += len(targets)
                self._close_batch(db, targets, now, result)
                if len(targets) < self.batch_size:
                    break
        finally:
            db.close()

        if result.scanned:
            logger.info(
                f"Expiry sweep closed {result.closed} of {result.scanned} lapsed sessions",
                extra={"extra_data": result.model_dump()}
            )
        return result

    def _close_batch(self, db, targets, now: datetime, result: SweepResult) -> None:
        for session_id, user_id in targets:
            try:
                self.attendance_service.close_session(
                    db,
                    session_id,
                    user_id,
                    CheckoutReason.AUTO_HEARTBEAT_EXPIRED,
                    lease_lapsed_before=now
                )
                result.closed += 1
            except (AlreadyClosed, LeaseRenewed, NoActiveSession) as e:
                # resolved by a concurrent clock-out, exit report or renewal
                result.skipped += 1
                logger.debug(f"Sweep skipped session {session_id}: {e.details.get('error_code')}")
            except (StoreUnavailable, SQLAlchemyError):
                result.failed += 1
                logger.exception(f"Sweep failed to close session {session_id}")

    def _run_scheduled_tick(self) -> None:
        try:
            self.tick()
        except SQLAlchemyError:
            logger.exception("Expiry sweep tick failed")

    def start(self) -> BackgroundScheduler:
        """Schedule tick() every interval on a background thread"""
        if self._scheduler is not None:
            return self._scheduler

        scheduler = BackgroundScheduler(timezone="UTC")
        scheduler.add_job(
            self._run_scheduled_tick,
            "interval",
            seconds=self.interval_seconds,
            id=SWEEP_JOB_ID,
            coalesce=True,
            max_instances=1,
            misfire_grace_time=self.interval_seconds
        )
        scheduler.start()
        self._scheduler = scheduler

        logger.info(f"Expiry sweeper started, interval {self.interval_seconds}s")
        return scheduler

    def shutdown(self) -> None:
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Expiry sweeper stopped")
