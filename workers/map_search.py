"""
Workers - Map Search.

============================================================
RESPONSIBILITY
============================================================
On-demand "recent records on mapper X's maps" search.

- MapSearchService: accepting boundary (submit / status)
- MapSearchWorker: queue handler running one job

============================================================
JOB FLOW
============================================================
1. pending -> processing
2. List all of the mapper's maps (map index, paginated)
3. Per map, sequentially: leaderboard with retry, window
   filter, 500ms pacing sleep
4. Resolve display names of every surviving record
5. processing -> completed (result) | failed (error)

Re-delivery of a terminal job is acknowledged and skipped.
Re-delivery of a job still in processing (previous consumer
died) runs it again.

============================================================
"""

import logging
from typing import Any, Dict, Optional

from core.clock import ClockProtocol, SystemClock, to_iso8601
from core.config import WorkerConfig
from core.constants import TimeWindow
from core.exceptions import TrackerException
from storage.database import Database
from storage.models.jobs import JobStatus
from storage.repositories.jobs import JobRepository
from upstream.map_index import MapIndexClient
from upstream.name_resolver import PlayerNameResolver
from workers.messages import MapSearchMessage
from workers.queue import RequestLimiter, SingleConsumerQueue
from workers.records import LeaderboardScanner


class MapSearchWorker:
    """Handler for MapSearchMessage."""

    def __init__(
        self,
        database: Database,
        map_index: MapIndexClient,
        scanner: LeaderboardScanner,
        resolver: PlayerNameResolver,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        self._database = database
        self._map_index = map_index
        self._scanner = scanner
        self._resolver = resolver
        self._clock = clock or SystemClock()
        self._logger = logging.getLogger("worker.map_search")

    async def handle(self, message: MapSearchMessage) -> None:
        job_id = message.job_id

        with self._database.transaction() as session:
            repo = JobRepository(session, self._clock)
            job = repo.get(job_id)
            if job is None:
                self._logger.warning(f"Job {job_id} unknown or expired, dropping message")
                return
            status = job.job_status
            if status.is_terminal:
                self._logger.info(f"Job {job_id} already {status.value}, skipping")
                return
            if status == JobStatus.PENDING:
                repo.transition(job_id, JobStatus.PROCESSING)
            else:
                self._logger.warning(f"Job {job_id} was left processing, running again")

        self._logger.info(
            f"Job {job_id} started: {message.subject_username} window={message.time_window}"
        )

        try:
            result = await self._run(message)
        except TrackerException as e:
            self._fail(job_id, e.message)
            return
        except Exception as e:
            self._logger.exception(f"Job {job_id} crashed")
            self._fail(job_id, f"Unexpected error: {e}")
            return

        with self._database.transaction() as session:
            JobRepository(session, self._clock).transition(
                job_id, JobStatus.COMPLETED, result=result
            )
        self._logger.info(f"Job {job_id} completed with {len(result)} maps")

    async def _run(self, message: MapSearchMessage) -> list:
        maps = await self._map_index.list_maps(message.subject_username)
        if not maps:
            return []

        results = await self._scanner.scan(maps, message.time_window)

        account_ids = {r.account_id for result in results for r in result.records}
        if account_ids:
            names = await self._resolver.resolve(account_ids)
            self._logger.info(f"Resolved {len(names)}/{len(account_ids)} player names")
            for result in results:
                for record in result.records:
                    record.player_name = names.get(record.account_id)

        return [r.to_dict() for r in results]

    def _fail(self, job_id: str, error_message: str) -> None:
        self._logger.error(f"Job {job_id} failed: {error_message}")
        with self._database.transaction() as session:
            JobRepository(session, self._clock).transition(
                job_id, JobStatus.FAILED, error_message=error_message
            )


class MapSearchService:
    """Accepts on-demand searches and answers status polls."""

    def __init__(
        self,
        database: Database,
        queue: SingleConsumerQueue,
        limiter: RequestLimiter,
        config: WorkerConfig,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        self._database = database
        self._queue = queue
        self._limiter = limiter
        self._config = config
        self._clock = clock or SystemClock()
        self._logger = logging.getLogger("worker.map_search.service")

    async def submit(self, username: str, window: str) -> str:
        """
        Create a pending job and enqueue it.

        Raises:
            ValueError: unknown window or empty username
            RequestLimitError: per-user limit reached
        """
        username = (username or "").strip()
        if not username:
            raise ValueError("username is required")
        window = TimeWindow(window).value

        self._limiter.check(username)

        with self._database.transaction() as session:
            job = JobRepository(session, self._clock).create(
                username, window, ttl_seconds=self._config.job_ttl_seconds
            )
            job_id = job.job_id

        await self._queue.enqueue(MapSearchMessage(
            job_id=job_id, subject_username=username, time_window=window,
        ))
        self._logger.info(f"Accepted job {job_id} for {username} ({window})")
        return job_id

    def status(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Job status payload, or None when unknown or expired."""
        with self._database.transaction() as session:
            job = JobRepository(session, self._clock).get(job_id)
            if job is None:
                return None
            payload = {
                "job_id": job.job_id,
                "status": job.status,
                "created_at": to_iso8601(job.created_at),
                "updated_at": to_iso8601(job.updated_at),
            }
            if job.result is not None:
                payload["result"] = job.result
            if job.error_message:
                payload["error"] = job.error_message
            return payload
