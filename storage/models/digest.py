"""
Daily Digest ORM Models.

============================================================
PURPOSE
============================================================
- DailyDigestRecord: one row per (user, date) merging both
  pipelines; each content field has exactly one writer
- NotificationHistory: outcome of each check per user/day,
  so a failed check is distinguishable from an empty one

============================================================
CONCURRENCY
============================================================
mapper_content is written only by the mapper pipeline and
driver_content only by the driver pipeline. Writers update a
single column through an upsert, never the whole row.

============================================================
"""

import enum
from datetime import date, datetime
from typing import Optional

from sqlalchemy import Date, DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from storage.models.base import Base, TimestampMixin


class DigestField(str, enum.Enum):
    """Independently owned content fields of a digest record."""

    MAPPER = "mapper_content"
    DRIVER = "driver_content"


class NotificationType(str, enum.Enum):
    MAPPER_ALERT = "mapper_alert"
    DRIVER_NOTIFICATION = "driver_notification"


class HistoryStatus(str, enum.Enum):
    PROCESSING = "processing"
    SENT = "sent"
    NO_NEW_TIMES = "no_new_times"
    TECHNICAL_ERROR = "technical_error"


class DailyDigestRecord(Base, TimestampMixin):
    """
    Aggregated daily email content for one user.

    ============================================================
    DATA LIFECYCLE
    ============================================================
    - Upserted field-by-field during the daily run
    - sent_at set once by the dispatcher; never sent twice
    - Retained until expires_at (default 7 days)

    ============================================================
    """

    __tablename__ = "daily_digest_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    owning_user: Mapped[str] = mapped_column(String(255), nullable=False)

    digest_date: Mapped[date] = mapped_column(Date, nullable=False)

    contact_address: Mapped[str] = mapped_column(String(320), nullable=False, default="")

    display_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="",
        comment="Name used in subject/greeting"
    )

    mapper_content: Mapped[str] = mapped_column(Text, nullable=False, default="")

    driver_content: Mapped[str] = mapped_column(Text, nullable=False, default="")

    sent_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Sent-marker; dispatch skips rows where set"
    )

    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("owning_user", "digest_date", name="uq_digest_user_date"),
        Index("idx_digest_date", "digest_date"),
        Index("idx_digest_expires_at", "expires_at"),
    )

    @property
    def has_mapper_content(self) -> bool:
        return bool(self.mapper_content and self.mapper_content.strip())

    @property
    def has_driver_content(self) -> bool:
        return bool(self.driver_content and self.driver_content.strip())


class NotificationHistory(Base):
    """Outcome of one daily check."""

    __tablename__ = "notification_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    owning_user: Mapped[str] = mapped_column(String(255), nullable=False)

    subject: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Mapper username or tracked player"
    )

    notification_type: Mapped[str] = mapped_column(String(20), nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False)

    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    records_found: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    processing_date: Mapped[date] = mapped_column(Date, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index(
            "idx_notification_history_user_date_type",
            "owning_user", "processing_date", "notification_type",
        ),
    )
