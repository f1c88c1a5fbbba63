"""
Workers - Leaderboard Scan.

============================================================
RESPONSIBILITY
============================================================
Per-map leaderboard work shared by the on-demand search and
the accurate daily mapper check.

- filter_records_by_window: keep records driven inside the
  lookback window, measured from now
- LeaderboardScanner: sequential per-map fetch with retry,
  window filter and the mandatory pacing sleep

============================================================
PACING
============================================================
A fixed sleep follows EVERY map, whatever the outcome. The
upstream documentation mandates it; it is never shortened.

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Union

from core.clock import ClockProtocol
from core.constants import MIN_INTER_MAP_DELAY_SECONDS, TimeWindow
from core.exceptions import UpstreamError
from upstream.leaderboards import LeaderboardApi
from upstream.types import LeaderboardRecord, MapInfo
from workers.retry import RetryPolicy


logger = logging.getLogger("worker.records")


def filter_records_by_window(
    records: Iterable[LeaderboardRecord],
    window: Union[str, TimeWindow],
    now_ms: int,
) -> List[LeaderboardRecord]:
    """
    Keep records with now - timestamp <= window.

    An unknown window yields no records.
    """
    try:
        threshold = TimeWindow(window).milliseconds
    except ValueError:
        logger.warning(f"Unknown time window: {window!r}")
        return []
    return [r for r in records if now_ms - r.timestamp * 1000 <= threshold]


@dataclass
class MapResult:
    """Records found on one map."""
    map_name: str
    map_uid: str
    records: List[LeaderboardRecord] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "map_name": self.map_name,
            "map_uid": self.map_uid,
            "leaderboard_entries": [r.to_dict() for r in self.records],
        }


class LeaderboardScanner:
    """Sequential, paced per-map leaderboard scan."""

    def __init__(
        self,
        leaderboards: LeaderboardApi,
        retry_policy: RetryPolicy,
        clock: ClockProtocol,
        inter_map_delay_seconds: float = MIN_INTER_MAP_DELAY_SECONDS,
        leaderboard_length: int = 100,
    ) -> None:
        self._leaderboards = leaderboards
        self._retry = retry_policy
        self._clock = clock
        self._delay = max(inter_map_delay_seconds, MIN_INTER_MAP_DELAY_SECONDS)
        self._length = leaderboard_length

    async def scan(
        self,
        maps: List[MapInfo],
        window: Union[str, TimeWindow],
    ) -> List[MapResult]:
        """
        Fetch and filter every map in order.

        Maps with no matching records are dropped. A map whose
        data is unusable is logged and skipped. A transient
        failure that outlives the retry policy propagates.
        """
        results = []
        for index, info in enumerate(maps, start=1):
            logger.debug(f"Processing map {index}/{len(maps)}: {info.name}")
            try:
                records = await self._retry.run(
                    lambda uid=info.map_uid: self._leaderboards.get_top(uid, self._length),
                    description=f"leaderboard {info.map_uid}",
                )
                matching = filter_records_by_window(records, window, self._clock.now_ms())
                if matching:
                    results.append(MapResult(info.name, info.map_uid, matching))
            except UpstreamError as e:
                if e.is_recoverable:
                    raise
                logger.warning(f"Skipping map {info.map_uid}: {e.message}")
            finally:
                await asyncio.sleep(self._delay)

        logger.info(f"Found {len(results)} maps with records out of {len(maps)} total maps")
        return results
