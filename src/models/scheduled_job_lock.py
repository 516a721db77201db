"""Sync job lock model: one row per sync type guarding against concurrent runs."""

from sqlalchemy import Column, String, DateTime, Boolean, Integer, Text
from datetime import datetime, timezone
from .base import Base


class ScheduledJobLock(Base):
    """
    Single-flight guard and status record for a Gripp sync type.

    One row per sync type ("gripp-projects-sync", "gripp-offers-sync",
    "gripp-hours-sync"). The row doubles as the source for ``/sync/status``:
    ``is_locked`` says whether a sync is running, ``last_run_at`` when it last
    finished successfully.

    Usage:
        1. Before starting a sync, try to acquire the lock (see ``src.services.job_lock``)
        2. If acquired, run the sync
        3. Release the lock, recording ``last_run_at`` on success
        4. If the lock is already held, reject the request with 429
    """

    __tablename__ = "scheduled_job_locks"

    job_name = Column(String(100), primary_key=True, nullable=False)

    # Lock state
    is_locked = Column(Boolean, default=False, nullable=False, index=True)
    locked_at = Column(DateTime, nullable=True)
    locked_by = Column(String(255), nullable=True)  # host:pid of the holder

    # Execution tracking
    last_run_at = Column(DateTime, nullable=True, index=True)  # last success
    last_run_duration_seconds = Column(Integer, nullable=True)
    last_error = Column(Text, nullable=True)

    created_at = Column(
        DateTime, default=lambda: datetime.now(timezone.utc), nullable=False
    )
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self):
        return (
            f"<ScheduledJobLock(job_name={self.job_name}, "
            f"is_locked={self.is_locked}, "
            f"last_run_at={self.last_run_at})>"
        )
