"""
Map Search Job Repository.

============================================================
PURPOSE
============================================================
Job store for on-demand map searches.

- create: new pending job with a TTL
- get: job by id, None once expired
- transition: conditional state change (compare-and-set)
- count_recent_for_user: backs the per-user request limit
- purge_expired: TTL cleanup

============================================================
"""

from datetime import datetime, timedelta
from typing import Any, List, Optional
from uuid import uuid4

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from core.clock import ClockProtocol
from core.exceptions import JobStateError
from storage.models.jobs import JOB_TRANSITIONS, JobStatus, MapSearchJob
from storage.repositories.base import BaseRepository
from storage.repositories.exceptions import RecordNotFoundError


class JobRepository(BaseRepository[MapSearchJob]):
    """Repository for MapSearchJob records."""

    def __init__(self, session: Session, clock: Optional[ClockProtocol] = None) -> None:
        super().__init__(session, MapSearchJob, "JobRepository", clock)

    def create(
        self,
        subject_username: str,
        time_window: str,
        ttl_seconds: int,
        job_id: Optional[str] = None,
    ) -> MapSearchJob:
        """
        Create a pending job.

        Args:
            subject_username: Mapper to search
            time_window: 1d / 1w / 1m
            ttl_seconds: Lifetime of the record
            job_id: Explicit id (generated when omitted)
        """
        now = self._clock.now()
        job = MapSearchJob(
            job_id=job_id or uuid4().hex,
            subject_username=subject_username,
            time_window=time_window,
            status=JobStatus.PENDING.value,
            created_at=now,
            updated_at=now,
            expires_at=now + timedelta(seconds=ttl_seconds),
        )
        return self._add(job)

    def get(self, job_id: str) -> Optional[MapSearchJob]:
        """Get a live job; expired jobs are reported as absent."""
        stmt = select(MapSearchJob).where(
            MapSearchJob.job_id == job_id,
            MapSearchJob.expires_at > self._clock.now(),
        )
        return self._execute_scalar(stmt)

    def transition(
        self,
        job_id: str,
        new_status: JobStatus,
        result: Optional[List[Any]] = None,
        error_message: Optional[str] = None,
    ) -> MapSearchJob:
        """
        Move a job to a new state.

        The UPDATE is conditioned on the status read just before,
        so two writers racing on the same job cannot both win.

        Raises:
            RecordNotFoundError: job unknown or expired
            JobStateError: transition not allowed from the current state
        """
        job = self.get(job_id)
        if job is None:
            raise RecordNotFoundError(self._repository_name, job_id, "job_id")

        current = job.job_status
        if new_status not in JOB_TRANSITIONS[current]:
            raise JobStateError(
                f"Illegal transition {current.value} -> {new_status.value}",
                job_id=job_id,
            )

        values = {"status": new_status.value, "updated_at": self._clock.now()}
        if result is not None:
            values["result"] = result
        if error_message is not None:
            values["error_message"] = error_message

        stmt = (
            update(MapSearchJob)
            .where(MapSearchJob.job_id == job_id, MapSearchJob.status == current.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if self._execute_write(stmt, "transition") != 1:
            raise JobStateError(
                f"Job changed state concurrently (expected {current.value})",
                job_id=job_id,
            )

        self._session.refresh(job)
        self._logger.info(f"Job {job_id}: {current.value} -> {new_status.value}")
        return job

    def count_recent_for_user(self, subject_username: str, since: datetime) -> int:
        """Jobs created for a username at or after `since`."""
        return self._count(
            MapSearchJob.subject_username == subject_username,
            MapSearchJob.created_at >= since,
        )

    def purge_expired(self) -> int:
        """Delete expired jobs. Returns the number removed."""
        stmt = delete(MapSearchJob).where(MapSearchJob.expires_at <= self._clock.now())
        removed = self._execute_write(stmt, "purge_expired")
        if removed:
            self._logger.info(f"Purged {removed} expired jobs")
        return removed
