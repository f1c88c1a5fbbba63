"""
Digest Dispatcher.

============================================================
RESPONSIBILITY
============================================================
Sends at most one email per (user, date).

1. Load the day's records without a sent-marker
2. Skip records whose fields are both blank
3. Send; on success set sent_at and log history
4. On failure (send or sent-marker write) log and continue
   with the next user

Running the dispatcher twice for one date is safe: sent
records are skipped, and mark_sent only succeeds once.

============================================================
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from core.clock import ClockProtocol, SystemClock
from core.exceptions import DeliveryError, TrackerException
from storage.database import Database, DatabasePersistenceError
from storage.models.digest import (
    DailyDigestRecord,
    HistoryStatus,
    NotificationType,
)
from storage.repositories.digest import DigestRepository, NotificationHistoryRepository
from notifications.digest import compose_digest
from notifications.email_sender import EmailSender


logger = logging.getLogger("notifications.dispatcher")


@dataclass
class DispatchReport:
    """Counts for one dispatch run."""
    sent: int = 0
    skipped: int = 0
    failed: int = 0
    failed_users: List[str] = field(default_factory=list)


class DigestDispatcher:
    """Composes and sends the day's digests."""

    def __init__(
        self,
        database: Database,
        sender: EmailSender,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        self._database = database
        self._sender = sender
        self._clock = clock or SystemClock()

    async def dispatch(self, digest_date: Optional[date] = None) -> DispatchReport:
        digest_date = digest_date or self._clock.today()
        report = DispatchReport()

        with self._database.transaction() as session:
            records = DigestRepository(session, self._clock).records_for_date(digest_date)
        logger.info(f"Found {len(records)} unsent digest records for {digest_date}")

        for record in records:
            await self._dispatch_one(record, report)

        logger.info(
            f"Email summary: {report.sent} sent, {report.skipped} skipped, {report.failed} failed"
        )
        return report

    async def _dispatch_one(self, record: DailyDigestRecord, report: DispatchReport) -> None:
        email = compose_digest(record)
        if email is None:
            logger.debug(f"Skipping {record.owning_user}: no content")
            report.skipped += 1
            return

        if not record.contact_address:
            logger.warning(f"Skipping {record.owning_user}: no contact address")
            report.failed += 1
            report.failed_users.append(record.owning_user)
            return

        result = await self._sender.send(record.contact_address, email.subject, email.body)
        if not result.success:
            error = DeliveryError(
                f"Send failed for {record.owning_user}: {result.error}",
                context={"digest_id": record.id, "digest_date": str(record.digest_date)},
            )
            logger.error(error.message, extra={"context": error.to_dict()})
            report.failed += 1
            report.failed_users.append(record.owning_user)
            return

        try:
            marked = self._record_sent(record, email.subject)
        except (DatabasePersistenceError, TrackerException) as e:
            # Email went out; without the sent-marker a re-run sends it again
            logger.error(
                f"Email sent to {record.owning_user} but digest {record.id} "
                f"was not marked sent: {e}",
                exc_info=True,
            )
            report.failed += 1
            report.failed_users.append(record.owning_user)
            return

        if not marked:
            logger.warning(f"Digest {record.id} was already marked sent")
        report.sent += 1
        logger.info(f"Email sent to {record.owning_user}")

    def _record_sent(self, record: DailyDigestRecord, subject: str) -> bool:
        with self._database.transaction() as session:
            marked = DigestRepository(session, self._clock).mark_sent(record.id)
            history = NotificationHistoryRepository(session, self._clock)
            sections = []
            if record.has_mapper_content:
                sections.append(NotificationType.MAPPER_ALERT)
            if record.has_driver_content:
                sections.append(NotificationType.DRIVER_NOTIFICATION)
            for notification_type in sections:
                history.record(
                    record.owning_user,
                    subject=record.owning_user,
                    notification_type=notification_type,
                    status=HistoryStatus.SENT,
                    processing_date=record.digest_date,
                    message=subject,
                )
        return marked
