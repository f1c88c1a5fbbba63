"""
Daily Digest Repositories.

============================================================
PURPOSE
============================================================
- DigestRepository: field-scoped upsert of daily digest content,
  sent-marker handling, TTL purge
- NotificationHistoryRepository: append-only check outcomes

============================================================
CONCURRENCY
============================================================
upsert_field() is one INSERT ... ON CONFLICT DO UPDATE that sets
only the caller's column. The mapper and driver pipelines may
write the same (user, date) row in any order without losing
each other's content.

mark_sent() is a conditional UPDATE on sent_at IS NULL; only one
dispatcher run can claim a record.

============================================================
"""

from datetime import date, datetime, timedelta
from typing import List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from core.clock import ClockProtocol
from storage.models.digest import (
    DailyDigestRecord,
    DigestField,
    HistoryStatus,
    NotificationHistory,
    NotificationType,
)
from storage.repositories.base import BaseRepository


class DigestRepository(BaseRepository[DailyDigestRecord]):
    """Repository for DailyDigestRecord."""

    def __init__(
        self,
        session: Session,
        clock: Optional[ClockProtocol] = None,
        ttl_days: int = 7,
    ) -> None:
        super().__init__(session, DailyDigestRecord, "DigestRepository", clock)
        self._ttl = timedelta(days=ttl_days)

    def upsert_field(
        self,
        owning_user: str,
        digest_date: date,
        field: DigestField,
        content: str,
        contact_address: str = "",
        display_name: str = "",
    ) -> None:
        """
        Write one content field of the (user, date) record.

        contact_address and display_name are only set when the
        row is created.
        """
        now = self._clock.now()
        values = {
            "owning_user": owning_user,
            "digest_date": digest_date,
            "contact_address": contact_address,
            "display_name": display_name or owning_user,
            DigestField.MAPPER.value: "",
            DigestField.DRIVER.value: "",
            "expires_at": now + self._ttl,
            "created_at": now,
            "updated_at": now,
        }
        values[field.value] = content

        stmt = self._dialect_insert().values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["owning_user", "digest_date"],
            set_={
                field.value: getattr(stmt.excluded, field.value),
                "updated_at": stmt.excluded.updated_at,
            },
        )
        self._execute_write(stmt, "upsert_field")
        self._logger.debug(f"Upserted {field.value} for {owning_user} on {digest_date}")

    def get(self, owning_user: str, digest_date: date) -> Optional[DailyDigestRecord]:
        stmt = select(DailyDigestRecord).where(
            DailyDigestRecord.owning_user == owning_user,
            DailyDigestRecord.digest_date == digest_date,
        ).execution_options(populate_existing=True)
        return self._execute_scalar(stmt)

    def records_for_date(
        self,
        digest_date: date,
        unsent_only: bool = True,
    ) -> List[DailyDigestRecord]:
        stmt = select(DailyDigestRecord).where(DailyDigestRecord.digest_date == digest_date)
        if unsent_only:
            stmt = stmt.where(DailyDigestRecord.sent_at.is_(None))
        stmt = stmt.order_by(DailyDigestRecord.id).execution_options(populate_existing=True)
        return self._execute_query(stmt)

    def mark_sent(self, record_id: int, sent_at: Optional[datetime] = None) -> bool:
        """
        Set the sent-marker.

        Returns:
            False when the record was already marked
        """
        stmt = (
            update(DailyDigestRecord)
            .where(DailyDigestRecord.id == record_id, DailyDigestRecord.sent_at.is_(None))
            .values(sent_at=sent_at or self._clock.now())
            .execution_options(synchronize_session=False)
        )
        return self._execute_write(stmt, "mark_sent") == 1

    def purge_expired(self) -> int:
        stmt = delete(DailyDigestRecord).where(DailyDigestRecord.expires_at <= self._clock.now())
        removed = self._execute_write(stmt, "purge_expired")
        if removed:
            self._logger.info(f"Purged {removed} expired digest records")
        return removed


class NotificationHistoryRepository(BaseRepository[NotificationHistory]):
    """Append-only log of daily check outcomes."""

    def __init__(self, session: Session, clock: Optional[ClockProtocol] = None) -> None:
        super().__init__(session, NotificationHistory, "NotificationHistoryRepository", clock)

    def record(
        self,
        owning_user: str,
        subject: str,
        notification_type: NotificationType,
        status: HistoryStatus,
        processing_date: date,
        records_found: int = 0,
        message: Optional[str] = None,
    ) -> NotificationHistory:
        return self._add(NotificationHistory(
            owning_user=owning_user,
            subject=subject,
            notification_type=notification_type.value,
            status=status.value,
            message=message,
            records_found=records_found,
            processing_date=processing_date,
            created_at=self._clock.now(),
        ))

    def for_date(
        self,
        processing_date: date,
        owning_user: Optional[str] = None,
    ) -> List[NotificationHistory]:
        stmt = select(NotificationHistory).where(
            NotificationHistory.processing_date == processing_date
        )
        if owning_user is not None:
            stmt = stmt.where(NotificationHistory.owning_user == owning_user)
        return self._execute_query(stmt.order_by(NotificationHistory.id))
