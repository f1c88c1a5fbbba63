"""
Tests for the repositories.

Covers:
- Job state machine and TTL
- Field-scoped digest upserts and the sent-marker
- Subscription observations and snapshots
- Token cache upserts
"""

from datetime import timedelta

import pytest

from core.clock import ensure_utc
from core.exceptions import JobStateError
from storage.models.digest import DigestField, HistoryStatus, NotificationType
from storage.models.jobs import JobStatus
from storage.models.subscriptions import AlertMode, NotificationStatus
from storage.repositories.digest import DigestRepository, NotificationHistoryRepository
from storage.repositories.exceptions import RecordNotFoundError
from storage.repositories.jobs import JobRepository
from storage.repositories.subscriptions import (
    DriverNotificationRepository,
    MapperAlertRepository,
    PositionSnapshotRepository,
)
from storage.repositories.tokens import TokenRepository


# =============================================================
# TEST: Jobs
# =============================================================

class TestJobRepository:
    """Job store."""

    def test_happy_path(self, session, clock):
        repo = JobRepository(session, clock)
        job = repo.create("mapper", "1w", ttl_seconds=86400)

        repo.transition(job.job_id, JobStatus.PROCESSING)
        clock.advance(seconds=30)
        done = repo.transition(job.job_id, JobStatus.COMPLETED, result=[{"map_uid": "u"}])

        assert done.job_status == JobStatus.COMPLETED
        assert done.result == [{"map_uid": "u"}]
        assert ensure_utc(done.updated_at) > ensure_utc(done.created_at)

    def test_terminal_state_cannot_be_left(self, session, clock):
        repo = JobRepository(session, clock)
        job = repo.create("mapper", "1d", ttl_seconds=86400)
        repo.transition(job.job_id, JobStatus.FAILED, error_message="x")

        with pytest.raises(JobStateError):
            repo.transition(job.job_id, JobStatus.PROCESSING)

    def test_pending_cannot_complete_directly(self, session, clock):
        repo = JobRepository(session, clock)
        job = repo.create("mapper", "1d", ttl_seconds=86400)

        with pytest.raises(JobStateError):
            repo.transition(job.job_id, JobStatus.COMPLETED)

    def test_unknown_job(self, session, clock):
        with pytest.raises(RecordNotFoundError):
            JobRepository(session, clock).transition("missing", JobStatus.PROCESSING)

    def test_expiry_and_purge(self, session, clock):
        repo = JobRepository(session, clock)
        short = repo.create("mapper", "1d", ttl_seconds=60)
        long = repo.create("mapper", "1d", ttl_seconds=86400)
        clock.advance(seconds=120)

        assert repo.get(short.job_id) is None
        assert repo.get(long.job_id) is not None
        assert repo.purge_expired() == 1


# =============================================================
# TEST: Digest
# =============================================================

class TestDigestRepository:
    """Field-scoped upserts and sent-marker."""

    def test_fields_do_not_overwrite_each_other(self, session, clock):
        repo = DigestRepository(session, clock)
        today = clock.today()

        repo.upsert_field("alice", today, DigestField.MAPPER, "new records", contact_address="a@x.test")
        repo.upsert_field("alice", today, DigestField.DRIVER, "overtaken")

        record = repo.get("alice", today)
        assert record.mapper_content == "new records"
        assert record.driver_content == "overtaken"
        assert record.contact_address == "a@x.test"
        assert record.display_name == "alice"

    def test_driver_first_then_mapper(self, session, clock):
        repo = DigestRepository(session, clock)
        today = clock.today()

        repo.upsert_field("bob", today, DigestField.DRIVER, "overtaken")
        repo.upsert_field("bob", today, DigestField.MAPPER, "new records")

        record = repo.get("bob", today)
        assert (record.mapper_content, record.driver_content) == ("new records", "overtaken")

    def test_mark_sent_once(self, session, clock):
        repo = DigestRepository(session, clock)
        today = clock.today()
        repo.upsert_field("alice", today, DigestField.MAPPER, "x")
        record = repo.get("alice", today)

        assert repo.mark_sent(record.id) is True
        assert repo.mark_sent(record.id) is False
        assert repo.records_for_date(today) == []
        assert len(repo.records_for_date(today, unsent_only=False)) == 1

    def test_purge_after_ttl(self, session, clock):
        repo = DigestRepository(session, clock, ttl_days=7)
        repo.upsert_field("alice", clock.today(), DigestField.MAPPER, "x")

        clock.advance(days=6)
        assert repo.purge_expired() == 0
        clock.advance(days=2)
        assert repo.purge_expired() == 1

    def test_history_by_date(self, session, clock):
        repo = NotificationHistoryRepository(session, clock)
        today = clock.today()
        repo.record("alice", "mapper1", NotificationType.MAPPER_ALERT, HistoryStatus.NO_NEW_TIMES, today)
        repo.record("bob", "bob", NotificationType.DRIVER_NOTIFICATION, HistoryStatus.TECHNICAL_ERROR, today)
        repo.record("alice", "mapper1", NotificationType.MAPPER_ALERT, HistoryStatus.SENT, today - timedelta(days=1))

        assert len(repo.for_date(today)) == 2
        rows = repo.for_date(today, owning_user="bob")
        assert [r.status for r in rows] == ["technical_error"]


# =============================================================
# TEST: Subscriptions
# =============================================================

class TestSubscriptionRepositories:
    """Mapper alerts, driver notifications, snapshots."""

    def test_alert_lookup_and_mode_update(self, session, clock):
        repo = MapperAlertRepository(session, clock)
        alert = repo.create("alice", "mapper1", "a@x.test")
        repo.create("bob", "mapper1", "b@x.test")

        found = repo.find_for_message("mapper1", "a@x.test")
        assert [a.owning_user for a in found] == ["alice"]

        repo.update_mode(alert.id, AlertMode.INACCURATE, 250)
        session.expire_all()
        stored = repo.get(alert.id)
        assert stored.alert_mode == AlertMode.INACCURATE
        assert stored.tracked_map_count == 250
        assert len(repo.list_active()) == 2

    def test_record_observation(self, session, clock):
        repo = DriverNotificationRepository(session, clock)
        tracked = repo.create("alice", "a@x.test", "uid-1", "acc-1", 3, 50000)
        absent = repo.create("alice", "a@x.test", "uid-2", "acc-1", 7, 60000)

        repo.record_observation(tracked.id, clock.now(), position=4, score=50000)
        repo.record_observation(absent.id, clock.now())
        session.expire_all()

        updated = repo.get(tracked.id)
        assert updated.last_known_position == 4
        untouched = repo.get(absent.id)
        assert untouched.last_known_position == 7
        assert untouched.last_checked_at is not None

    def test_deactivation(self, session, clock):
        repo = DriverNotificationRepository(session, clock)
        tracked = repo.create("alice", "a@x.test", "uid-1", "acc-1", 3, 50000)

        repo.record_observation(tracked.id, clock.now(), position=10001, score=59000, deactivate=True)
        session.expire_all()

        assert repo.get(tracked.id).status == NotificationStatus.INACTIVE.value
        assert repo.list_active() == []

    def test_snapshot_upsert(self, session, clock):
        repo = PositionSnapshotRepository(session, clock)

        repo.save("uid-1", 10, 45000)
        repo.save("uid-1", 12, 44000)
        session.expire_all()

        snapshot = repo.get("uid-1")
        assert (snapshot.ranked_count, snapshot.best_score) == (12, 44000)


# =============================================================
# TEST: Tokens
# =============================================================

class TestTokenRepository:
    """Last-writer-wins token cache."""

    def test_save_replaces(self, session, clock):
        repo = TokenRepository(session, clock)
        expires = clock.now() + timedelta(days=1)

        repo.save("auth", "access", "t1", expires_at=expires)
        repo.save("auth", "access", "t2", expires_at=expires)
        session.expire_all()

        assert repo.get("auth", "access").token == "t2"
        assert repo.get("auth", "refresh") is None
