"""
Map Search Job ORM Model.

============================================================
PURPOSE
============================================================
Ephemeral record of one on-demand map search: progress,
terminal result or error.

============================================================
DATA LIFECYCLE ROLE
============================================================
- Mutability: MUTABLE by the map search worker only
- Lifetime: expires_at (default 24h), purged by the job store
- Consumers: external polling client

============================================================
STATE MACHINE
============================================================
pending -> processing -> completed | failed
Terminal states never transition again.

============================================================
"""

import enum
from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import JSON, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from storage.models.base import Base


class JobStatus(str, enum.Enum):
    """Lifecycle states of a map search job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


# Allowed forward transitions
JOB_TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.PROCESSING, JobStatus.FAILED},
    JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}


class MapSearchJob(Base):
    """
    On-demand search for recent records on a mapper's maps.

    ============================================================
    TRACEABILITY
    ============================================================
    - job_id: opaque id handed to the polling client
    - subject_username: mapper searched for
    - time_window: 1d / 1w / 1m

    ============================================================
    """

    __tablename__ = "map_search_jobs"

    job_id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        comment="Opaque unique job id"
    )

    subject_username: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Mapper whose maps are searched"
    )

    time_window: Mapped[str] = mapped_column(
        String(4),
        nullable=False,
        comment="Lookback window: 1d, 1w, 1m"
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=JobStatus.PENDING.value,
        comment="pending, processing, completed, failed"
    )

    result: Mapped[Optional[List[Any]]] = mapped_column(
        JSON,
        nullable=True,
        comment="Ordered list of {map_name, map_uid, leaderboard_entries}"
    )

    error_message: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Failure summary"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="When the job was accepted"
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="Last state change"
    )

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="TTL; the record is treated as gone afterwards"
    )

    __table_args__ = (
        Index("idx_map_search_jobs_expires_at", "expires_at"),
        Index("idx_map_search_jobs_subject_created", "subject_username", "created_at"),
    )

    @property
    def job_status(self) -> JobStatus:
        return JobStatus(self.status)

    def __repr__(self) -> str:
        return (
            f"<MapSearchJob {self.job_id} {self.subject_username} "
            f"{self.time_window} {self.status}>"
        )
