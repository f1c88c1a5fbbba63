"""
Orchestrator - Core.

============================================================
RESPONSIBILITY
============================================================
Builds one runtime for the tracker and runs its two paths.

- Logging setup
- Wiring of database, upstream clients, workers and queues
- On-demand path: submit, drain, status
- Daily path: schedule, drain checks, dispatch digests

============================================================
ARCHITECTURAL POSITION
============================================================
- This module has NO business logic
- Every collaborator is constructed here and injected; no
  module-level singletons
- Queues are single-consumer; nothing here runs handlers
  concurrently

============================================================
"""

import json
import logging
import sys
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Optional

import httpx

from core.clock import ClockProtocol, SystemClock
from core.config import AppConfig
from notifications.checks import DailyCheckProcessor
from notifications.digest import DigestAggregator
from notifications.dispatcher import DigestDispatcher, DispatchReport
from notifications.email_sender import EmailSender, HttpEmailSender
from notifications.mode_selector import ModeSelector
from notifications.position_diff import PositionDiffEngine
from notifications.scheduler import DailyScheduler, ScheduleReport
from storage.database import Database
from upstream.client import UpstreamApiClient
from upstream.leaderboards import LeaderboardApi
from upstream.map_index import MapIndexClient
from upstream.name_resolver import PlayerNameResolver
from upstream.token_store import LiveServicesTokenProvider, OAuthTokenProvider, TokenCache
from workers.map_search import MapSearchService, MapSearchWorker
from workers.messages import MapSearchMessage, SchedulerMessage
from workers.queue import RequestLimiter, SingleConsumerQueue
from workers.records import LeaderboardScanner
from workers.retry import RetryPolicy


# ============================================================
# LOGGING SETUP
# ============================================================

def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
) -> logging.Logger:
    """
    Set up structured logging.

    Args:
        level: Log level
        log_format: Output format (json or text)

    Returns:
        Configured logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps({
                "timestamp": "%(asctime)s",
                "level": "%(levelname)s",
                "logger": "%(name)s",
                "message": "%(message)s",
            })
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    # Request lines from the HTTP client are too chatty at INFO
    logging.getLogger("httpx").setLevel(max(log_level, logging.WARNING))

    return logging.getLogger("orchestrator")


# ============================================================
# DAILY RUN RESULT
# ============================================================

@dataclass
class DailyRunResult:
    schedule: ScheduleReport
    checks_handled: int
    dispatch: DispatchReport

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mapper_checks": self.schedule.mapper_checks,
            "driver_checks": self.schedule.driver_checks,
            "enqueue_failures": self.schedule.enqueue_failures,
            "purged_jobs": self.schedule.purged_jobs,
            "purged_digests": self.schedule.purged_digests,
            "checks_handled": self.checks_handled,
            "sent": self.dispatch.sent,
            "skipped": self.dispatch.skipped,
            "failed": self.dispatch.failed,
        }


# ============================================================
# RUNTIME
# ============================================================

class Runtime:
    """
    Fully wired tracker.

    Usage:
        runtime = Runtime(AppConfig.from_env())
        try:
            job_id = await runtime.search("someone", "1w")
        finally:
            await runtime.close()
    """

    def __init__(
        self,
        config: AppConfig,
        clock: Optional[ClockProtocol] = None,
        database: Optional[Database] = None,
        http: Optional[httpx.AsyncClient] = None,
        sender: Optional[EmailSender] = None,
    ) -> None:
        self.config = config
        self.clock = clock or SystemClock()
        self._logger = logging.getLogger("orchestrator")

        self.database = database or Database(config.database)
        self._http = http or httpx.AsyncClient(timeout=config.upstream.timeout_seconds)
        self.sender = sender or HttpEmailSender(config.email)

        upstream = config.upstream
        worker = config.worker
        notifications = config.notifications

        # --------------------------------------------------------
        # Upstream
        # --------------------------------------------------------
        self.client = UpstreamApiClient(self._http, user_agent=upstream.user_agent)
        cache = TokenCache(self.database, self.clock)
        self.live_tokens = LiveServicesTokenProvider(self.client, cache, upstream, self.clock)
        self.oauth_tokens = OAuthTokenProvider(self.client, cache, upstream, self.clock)

        self.leaderboards = LeaderboardApi(
            self.client,
            self.live_tokens,
            self.oauth_tokens,
            live_base_url=upstream.live_base_url,
            position_url=upstream.position_url,
        )
        self.map_index = MapIndexClient(
            self.client,
            upstream.map_index_url,
            max_pages=worker.max_pages,
            max_maps=worker.max_maps,
        )
        self.resolver = PlayerNameResolver(
            self.client,
            self.oauth_tokens,
            upstream.oauth_base_url,
            batch_size=notifications.name_batch_size,
        )

        # --------------------------------------------------------
        # On-demand path
        # --------------------------------------------------------
        self.scanner = LeaderboardScanner(
            self.leaderboards,
            RetryPolicy(worker.retry_attempts, worker.retry_delay_seconds),
            self.clock,
            inter_map_delay_seconds=worker.inter_map_delay_seconds,
            leaderboard_length=worker.leaderboard_length,
        )
        self.map_search_worker = MapSearchWorker(
            self.database, self.map_index, self.scanner, self.resolver, self.clock
        )
        self.map_search_queue: SingleConsumerQueue[MapSearchMessage] = SingleConsumerQueue(
            "map-search",
            MapSearchMessage,
            self.map_search_worker.handle,
            max_deliveries=worker.max_deliveries,
            timeout_seconds=worker.job_timeout_seconds,
        )
        self.map_search = MapSearchService(
            self.database,
            self.map_search_queue,
            RequestLimiter(self.database, worker.requests_per_minute_per_user, self.clock),
            worker,
            self.clock,
        )

        # --------------------------------------------------------
        # Daily path
        # --------------------------------------------------------
        self.diff_engine = PositionDiffEngine(
            self.database,
            self.leaderboards,
            self.clock,
            batch_size=notifications.position_batch_size,
            top_n_cutoff=notifications.driver_top_n_cutoff,
            pacing_seconds=worker.inter_map_delay_seconds,
        )
        self.aggregator = DigestAggregator(
            self.database, self.clock, ttl_days=notifications.digest_ttl_days
        )
        self.checks = DailyCheckProcessor(
            self.database,
            self.map_index,
            self.scanner,
            self.resolver,
            self.diff_engine,
            self.aggregator,
            selector=ModeSelector(notifications.accurate_map_threshold),
            config=notifications,
            clock=self.clock,
        )
        self.scheduler_queue: SingleConsumerQueue[SchedulerMessage] = SingleConsumerQueue(
            "scheduler",
            SchedulerMessage,
            self.checks.handle,
            max_deliveries=worker.max_deliveries,
            timeout_seconds=worker.job_timeout_seconds,
        )
        self.scheduler = DailyScheduler(self.database, self.scheduler_queue, self.clock)
        self.dispatcher = DigestDispatcher(self.database, self.sender, self.clock)

    # --------------------------------------------------------
    # On-demand path
    # --------------------------------------------------------

    async def search(self, username: str, window: str) -> str:
        """Submit a search and run it to completion in-process."""
        job_id = await self.map_search.submit(username, window)
        await self.map_search_queue.drain()
        return job_id

    def status(self, job_id: str) -> Optional[Dict[str, Any]]:
        return self.map_search.status(job_id)

    # --------------------------------------------------------
    # Daily path
    # --------------------------------------------------------

    async def run_daily(self, digest_date: Optional[date] = None) -> DailyRunResult:
        self._logger.info("=== DAILY RUN START ===")
        schedule = await self.scheduler.run()
        handled = await self.scheduler_queue.drain()
        dispatch = await self.dispatcher.dispatch(digest_date)
        self._logger.info("=== DAILY RUN COMPLETE ===")
        return DailyRunResult(schedule, handled, dispatch)

    async def dispatch(self, digest_date: Optional[date] = None) -> DispatchReport:
        return await self.dispatcher.dispatch(digest_date)

    # --------------------------------------------------------
    # Lifecycle
    # --------------------------------------------------------

    async def close(self) -> None:
        await self._http.aclose()
        await self.sender.close()
        self.database.dispose()


__all__ = [
    "DailyRunResult",
    "Runtime",
    "setup_logging",
]
