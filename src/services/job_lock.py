"""Single-flight guard for Gripp sync jobs.

Each sync type owns one row in ``scheduled_job_locks``. Starting a sync
flips ``is_locked`` inside a row-level lock, so two workers (or two clicks on
the dashboard's sync button) can never run the same sync at once. A lock older
than the stale timeout is assumed to belong to a crashed worker and is taken
over.

Usage:
    lock = JobLock(SYNC_JOB_NAMES["hours"])
    if not lock.acquire():
        raise SyncInProgressError("hours")
    try:
        run_sync()
        lock.release(success=True, duration_seconds=12)
    except Exception as e:
        lock.release(success=False, error=str(e))
        raise
"""

import logging
import os
import socket
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from config.settings import settings
from src.models.scheduled_job_lock import ScheduledJobLock
from src.utils.database import get_engine
from src.utils.errors import RateLimitExceededError

logger = logging.getLogger(__name__)

SYNC_JOB_NAMES: Dict[str, str] = {
    "projects": "gripp-projects-sync",
    "offers": "gripp-offers-sync",
    "hours": "gripp-hours-sync",
}


class SyncInProgressError(RateLimitExceededError):
    """Raised when a sync of the same type is already running."""

    def __init__(self, sync_type: str):
        super().__init__(
            f"A {sync_type} sync is already in progress",
            details={"syncType": sync_type},
        )
        self.sync_type = sync_type


def utcnow() -> datetime:
    """Naive UTC now; lock timestamps are stored without a timezone."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _naive(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class JobLock:
    """Database-backed lock for one job name."""

    def __init__(
        self,
        job_name: str,
        session_factory: Optional[Callable[[], Session]] = None,
        stale_after: Optional[timedelta] = None,
    ):
        self.job_name = job_name
        self.session_factory = session_factory or sessionmaker(bind=get_engine())
        self.stale_after = stale_after or timedelta(
            minutes=settings.sync.stale_lock_minutes
        )
        self.holder = f"{socket.gethostname()}:{os.getpid()}"
        self._acquired_at: Optional[datetime] = None

    def _is_stale(self, lock: ScheduledJobLock, now: datetime) -> bool:
        locked_at = _naive(lock.locked_at)
        return locked_at is None or now - locked_at > self.stale_after

    def acquire(self) -> bool:
        """Try to take the lock. Returns False if another run holds it."""
        session = self.session_factory()
        try:
            now = utcnow()
            lock = session.get(ScheduledJobLock, self.job_name, with_for_update=True)

            if lock is None:
                lock = ScheduledJobLock(job_name=self.job_name, is_locked=False)
                session.add(lock)
            elif lock.is_locked:
                if not self._is_stale(lock, now):
                    logger.info(
                        f"Lock {self.job_name} held by {lock.locked_by} since {lock.locked_at}"
                    )
                    session.rollback()
                    return False
                logger.warning(
                    f"Taking over stale lock {self.job_name} from {lock.locked_by} "
                    f"(locked at {lock.locked_at})"
                )

            lock.is_locked = True
            lock.locked_at = now
            lock.locked_by = self.holder
            session.commit()

            self._acquired_at = now
            logger.info(f"Acquired lock {self.job_name}")
            return True

        except IntegrityError:
            # Another worker inserted the row first
            session.rollback()
            logger.info(f"Lost race for lock {self.job_name}")
            return False
        finally:
            session.close()

    def release(
        self,
        success: bool = True,
        duration_seconds: Optional[float] = None,
        error: Optional[str] = None,
    ):
        """Release the lock, recording the run outcome."""
        session = self.session_factory()
        try:
            lock = session.get(ScheduledJobLock, self.job_name, with_for_update=True)
            if lock is None:
                logger.warning(f"Releasing lock {self.job_name} that does not exist")
                return

            now = utcnow()
            lock.is_locked = False
            lock.locked_at = None
            lock.locked_by = None

            if success:
                lock.last_run_at = now
                if duration_seconds is None and self._acquired_at is not None:
                    duration_seconds = (now - self._acquired_at).total_seconds()
                if duration_seconds is not None:
                    lock.last_run_duration_seconds = int(duration_seconds)
                lock.last_error = None
            else:
                lock.last_error = (error or "unknown error")[:2000]

            session.commit()
            logger.info(f"Released lock {self.job_name} (success={success})")
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


def get_sync_status(session: Session) -> Dict[str, object]:
    """Current sync state for the dashboard's status indicator."""
    locks = {
        lock.job_name: lock
        for lock in session.query(ScheduledJobLock)
        .filter(ScheduledJobLock.job_name.in_(list(SYNC_JOB_NAMES.values())))
        .all()
    }

    def running(sync_type: str) -> bool:
        lock = locks.get(SYNC_JOB_NAMES[sync_type])
        return bool(lock and lock.is_locked)

    def last_run(sync_type: str) -> Optional[str]:
        lock = locks.get(SYNC_JOB_NAMES[sync_type])
        if lock is None or lock.last_run_at is None:
            return None
        return lock.last_run_at.isoformat()

    updated = [lock.updated_at for lock in locks.values() if lock.updated_at]

    status = {
        "projectSyncInProgress": running("projects"),
        "offerSyncInProgress": running("offers"),
        "hoursSyncInProgress": running("hours"),
        "lastProjectSync": last_run("projects"),
        "lastOfferSync": last_run("offers"),
        "lastHoursSync": last_run("hours"),
        "updatedAt": max(updated).isoformat() if updated else None,
    }
    status["syncInProgress"] = (
        status["projectSyncInProgress"]
        or status["offerSyncInProgress"]
        or status["hoursSyncInProgress"]
    )
    return status
