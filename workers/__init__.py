"""
Workers Package.

Queue-triggered, single-consumer workers.

Modules:
- retry: fixed-delay retry policy
- records: window filter and paced per-map leaderboard scan
- messages: queue message schemas
- queue: single-consumer queue and per-user request limiter
- map_search: on-demand map search worker and service
"""

from .map_search import MapSearchService, MapSearchWorker
from .messages import MapSearchMessage, SchedulerMessage
from .queue import RequestLimiter, SingleConsumerQueue
from .records import LeaderboardScanner, MapResult, filter_records_by_window
from .retry import RetryCancelledError, RetryPolicy

__all__ = [
    "MapSearchService",
    "MapSearchWorker",
    "MapSearchMessage",
    "SchedulerMessage",
    "RequestLimiter",
    "SingleConsumerQueue",
    "LeaderboardScanner",
    "MapResult",
    "filter_records_by_window",
    "RetryCancelledError",
    "RetryPolicy",
]
