"""
Daily Digest Aggregator and Composer.

============================================================
AGGREGATOR
============================================================
Writes one content field of the (user, date) digest record.
The sibling field is never read or written, so the mapper and
driver pipelines cannot overwrite each other.

- set_driver_content: the driver pass produces a user's whole
  section at once
- add_mapper_section: one mapper check per alert; a user with
  several alerts gets several sections. Re-adding an identical
  section is a no-op (re-delivered messages).

============================================================
COMPOSER
============================================================
Turns a record into (subject, body), or None when both
fields are blank.

============================================================
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from core.clock import ClockProtocol, SystemClock
from storage.database import Database
from storage.models.digest import DailyDigestRecord, DigestField
from storage.repositories.digest import DigestRepository


logger = logging.getLogger("notifications.digest")

SECTION_SEPARATOR = "\n\n"


def _has_section(content: str, section: str) -> bool:
    """Whole-section match; text inside a longer section does not count."""
    padded = f"{SECTION_SEPARATOR}{content.strip()}{SECTION_SEPARATOR}"
    return f"{SECTION_SEPARATOR}{section}{SECTION_SEPARATOR}" in padded


# ============================================================
# AGGREGATOR
# ============================================================

class DigestAggregator:
    """Field-scoped writer of daily digest records."""

    def __init__(
        self,
        database: Database,
        clock: Optional[ClockProtocol] = None,
        ttl_days: int = 7,
    ) -> None:
        self._database = database
        self._clock = clock or SystemClock()
        self._ttl_days = ttl_days

    def _repo(self, session) -> DigestRepository:
        return DigestRepository(session, self._clock, ttl_days=self._ttl_days)

    def set_driver_content(
        self,
        owning_user: str,
        content: str,
        contact_address: str = "",
        digest_date: Optional[date] = None,
    ) -> None:
        digest_date = digest_date or self._clock.today()
        with self._database.transaction() as session:
            self._repo(session).upsert_field(
                owning_user, digest_date, DigestField.DRIVER, content,
                contact_address=contact_address,
            )
        logger.info(f"Driver content stored for {owning_user} ({digest_date})")

    def add_mapper_section(
        self,
        owning_user: str,
        section: str,
        contact_address: str = "",
        digest_date: Optional[date] = None,
    ) -> bool:
        """
        Append a section to mapper_content.

        Returns:
            False when the identical section was already present
        """
        section = section.strip()
        if not section:
            return False

        digest_date = digest_date or self._clock.today()
        with self._database.transaction() as session:
            repo = self._repo(session)
            record = repo.get(owning_user, digest_date)
            existing = (record.mapper_content or "") if record is not None else ""
            if _has_section(existing, section):
                return False
            content = f"{existing}{SECTION_SEPARATOR}{section}" if existing.strip() else section
            repo.upsert_field(
                owning_user, digest_date, DigestField.MAPPER, content,
                contact_address=contact_address,
            )
        logger.info(f"Mapper content stored for {owning_user} ({digest_date})")
        return True


# ============================================================
# COMPOSER
# ============================================================

@dataclass(frozen=True)
class ComposedEmail:
    subject: str
    body: str


def compose_digest(record: DailyDigestRecord) -> Optional[ComposedEmail]:
    """Build the email for one record, or None when there is nothing to say."""
    has_mapper = record.has_mapper_content
    has_driver = record.has_driver_content
    username = record.display_name or record.owning_user

    if has_mapper and has_driver:
        body = (
            f"Hello {username}!\n\n"
            "Here's your daily Trackmania update:\n\n"
            f"🗺️ NEW RECORDS ON YOUR MAPS:\n{record.mapper_content}\n\n"
            f"🏎️ POSITION CHANGES:\n{record.driver_content}\n\n"
        )
        return ComposedEmail("Daily Update: New Records & Position Changes", body)

    if has_mapper:
        body = f"New times have been driven on your map(s):\n\n{record.mapper_content}"
        return ComposedEmail(f"New times in {username}'s maps", body)

    if has_driver:
        body = (
            f"Hello {username}!\n\n"
            f"Here are the position changes on maps you're tracking:\n\n{record.driver_content}"
        )
        return ComposedEmail("Position Changes on Tracked Maps", body)

    return None
