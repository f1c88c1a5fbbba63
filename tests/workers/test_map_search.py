"""
Tests for the on-demand map search worker and service.

Covers:
- pending -> processing -> completed / failed
- Idempotent re-delivery of terminal jobs
- Zero maps is an empty success
- Upstream outage under the queue timeout ends in failed
- Status payload and request limit at the boundary
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from core.config import WorkerConfig
from core.exceptions import RequestLimitError, UpstreamTransientError
from storage.models.jobs import JobStatus
from storage.repositories.jobs import JobRepository
from upstream.types import LeaderboardRecord, MapInfo
from workers.map_search import MapSearchService, MapSearchWorker
from workers.messages import MapSearchMessage
from workers.queue import RequestLimiter, SingleConsumerQueue
from workers.records import LeaderboardScanner, MapResult
from workers.retry import RetryPolicy


# =============================================================
# FIXTURES
# =============================================================

@pytest.fixture
def map_index():
    index = MagicMock()
    index.list_maps = AsyncMock(return_value=[MapInfo(1, "uid-1", "Spring Map")])
    return index


@pytest.fixture
def scanner():
    scan = MagicMock()
    scan.scan = AsyncMock(return_value=[
        MapResult("Spring Map", "uid-1", [LeaderboardRecord("acc-1", 1, 45678, 1773500000)]),
    ])
    return scan


@pytest.fixture
def resolver():
    names = MagicMock()
    names.resolve = AsyncMock(return_value={"acc-1": "Alice"})
    return names


@pytest.fixture
def worker(database, map_index, scanner, resolver, clock):
    return MapSearchWorker(database, map_index, scanner, resolver, clock)


@pytest.fixture
def pending_job(database, clock):
    with database.transaction() as session:
        job = JobRepository(session, clock).create("mapper", "1d", ttl_seconds=86400)
        return job.job_id


def _message(job_id: str) -> MapSearchMessage:
    return MapSearchMessage(job_id=job_id, subject_username="mapper", time_window="1d")


def _job(database, clock, job_id):
    with database.transaction() as session:
        return JobRepository(session, clock).get(job_id)


# =============================================================
# TEST: Worker
# =============================================================

class TestMapSearchWorker:
    """Job state machine driven by the worker."""

    @pytest.mark.asyncio
    async def test_completes_with_result(self, worker, pending_job, database, clock, scanner):
        await worker.handle(_message(pending_job))

        job = _job(database, clock, pending_job)
        assert job.job_status == JobStatus.COMPLETED
        assert job.result == [{
            "map_name": "Spring Map",
            "map_uid": "uid-1",
            "leaderboard_entries": [{
                "accountId": "acc-1",
                "playerName": "Alice",
                "zoneName": "",
                "position": 1,
                "score": 45678,
                "timestamp": 1773500000,
            }],
        }]
        assert scanner.scan.await_args.args[1] == "1d"

    @pytest.mark.asyncio
    async def test_redelivery_of_completed_job_is_skipped(self, worker, pending_job, scanner):
        await worker.handle(_message(pending_job))
        await worker.handle(_message(pending_job))

        assert scanner.scan.await_count == 1

    @pytest.mark.asyncio
    async def test_zero_maps_is_empty_success(self, worker, pending_job, database, clock, map_index, scanner):
        map_index.list_maps.return_value = []

        await worker.handle(_message(pending_job))

        job = _job(database, clock, pending_job)
        assert job.job_status == JobStatus.COMPLETED
        assert job.result == []
        scanner.scan.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_upstream_outage_fails_job(self, worker, pending_job, database, clock, scanner):
        scanner.scan.side_effect = UpstreamTransientError("HTTP 503", status_code=503)

        await worker.handle(_message(pending_job))

        job = _job(database, clock, pending_job)
        assert job.job_status == JobStatus.FAILED
        assert "503" in job.error_message

    @pytest.mark.asyncio
    async def test_unexpected_error_fails_job(self, worker, pending_job, database, clock, resolver):
        resolver.resolve.side_effect = KeyError("boom")

        await worker.handle(_message(pending_job))

        assert _job(database, clock, pending_job).job_status == JobStatus.FAILED

    @pytest.mark.asyncio
    async def test_unknown_job_is_dropped(self, worker, map_index):
        await worker.handle(_message("does-not-exist"))

        map_index.list_maps.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_job_left_processing_runs_again(self, worker, pending_job, database, clock, scanner):
        with database.transaction() as session:
            JobRepository(session, clock).transition(pending_job, JobStatus.PROCESSING)

        await worker.handle(_message(pending_job))

        assert _job(database, clock, pending_job).job_status == JobStatus.COMPLETED
        assert scanner.scan.await_count == 1


# =============================================================
# TEST: Retries under the queue's execution timeout
# =============================================================

class TestOutageUnderTimeout:
    """A leaderboard outage ends the job as failed, never stuck in processing."""

    def _queue(self, database, map_index, resolver, clock, attempts, delay, timeout):
        leaderboards = MagicMock()
        leaderboards.get_top = AsyncMock(
            side_effect=UpstreamTransientError("HTTP 503", status_code=503)
        )
        scanner = LeaderboardScanner(leaderboards, RetryPolicy(attempts, delay), clock)
        worker = MapSearchWorker(database, map_index, scanner, resolver, clock)
        queue = SingleConsumerQueue(
            "map-search", MapSearchMessage, worker.handle, timeout_seconds=timeout
        )
        return queue, leaderboards

    @pytest.mark.asyncio
    async def test_cooldown_longer_than_timeout_fails_job(
        self, database, map_index, resolver, clock, pending_job
    ):
        # Same delay-to-timeout ratio as a 15 minute cooldown under a 15 minute timeout
        queue, leaderboards = self._queue(
            database, map_index, resolver, clock, attempts=5, delay=0.3, timeout=0.3
        )

        with patch("workers.records.asyncio.sleep", new_callable=AsyncMock):
            await queue.enqueue(_message(pending_job))
            await queue.drain()

        job = _job(database, clock, pending_job)
        assert job.job_status == JobStatus.FAILED
        assert "503" in job.error_message
        assert leaderboards.get_top.await_count == 1

    @pytest.mark.asyncio
    async def test_all_attempts_run_when_budget_allows(
        self, database, map_index, resolver, clock, pending_job
    ):
        queue, leaderboards = self._queue(
            database, map_index, resolver, clock, attempts=3, delay=0.01, timeout=5
        )

        with patch("workers.records.asyncio.sleep", new_callable=AsyncMock):
            await queue.enqueue(_message(pending_job))
            await queue.drain()

        assert _job(database, clock, pending_job).job_status == JobStatus.FAILED
        assert leaderboards.get_top.await_count == 3


# =============================================================
# TEST: Service boundary
# =============================================================

class TestMapSearchService:
    """Submit and status poll."""

    @pytest.fixture
    def queue(self):
        return SingleConsumerQueue("map-search", MapSearchMessage, AsyncMock())

    @pytest.fixture
    def service(self, database, queue, clock):
        limiter = RequestLimiter(database, requests_per_minute=2, clock=clock)
        return MapSearchService(database, queue, limiter, WorkerConfig(), clock)

    @pytest.mark.asyncio
    async def test_submit_creates_pending_job_and_enqueues(self, service, queue):
        job_id = await service.submit(" mapper ", "1w")

        status = service.status(job_id)
        assert status["status"] == "pending"
        assert status["job_id"] == job_id
        assert "result" not in status
        assert status["created_at"].startswith("2026-03-15T12:00:00")
        assert queue.qsize() == 1

    @pytest.mark.asyncio
    async def test_invalid_input_rejected(self, service, queue):
        with pytest.raises(ValueError):
            await service.submit("mapper", "2d")
        with pytest.raises(ValueError):
            await service.submit("   ", "1d")

        assert queue.qsize() == 0

    @pytest.mark.asyncio
    async def test_third_request_in_a_minute_rejected(self, service):
        await service.submit("mapper", "1d")
        await service.submit("mapper", "1d")

        with pytest.raises(RequestLimitError):
            await service.submit("mapper", "1d")

    def test_status_of_expired_job(self, service, database, clock):
        with database.transaction() as session:
            job_id = JobRepository(session, clock).create("mapper", "1d", ttl_seconds=60).job_id
        clock.advance(seconds=61)

        assert service.status(job_id) is None

    @pytest.mark.asyncio
    async def test_status_includes_error(self, service, database, clock):
        job_id = await service.submit("mapper", "1d")
        with database.transaction() as session:
            JobRepository(session, clock).transition(job_id, JobStatus.FAILED, error_message="outage")

        status = service.status(job_id)

        assert status["status"] == "failed"
        assert status["error"] == "outage"
