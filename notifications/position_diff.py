"""
Position Diff Engine.

============================================================
RESPONSIBILITY
============================================================
Batched ranking checks for many maps at once.

- Driver path: compare each tracked player's current
  position/score with the last known state
- Inaccurate mapper path: detect whether anyone new appeared
  on a map since the last snapshot

============================================================
DIFF RULE (lower is better)
============================================================
- regressed: new position > last OR new score > last
  -> notify, persist
- improved: new position < last OR new score < last
  -> persist silently
- ranked past the top-N cutoff -> notify, deactivate
- absent from the snapshot -> only last_checked_at changes

Regression wins when both hold (overtaken while also
improving one's own time).

============================================================
FAILURE ISOLATION
============================================================
Map ids are grouped into batches of at most 50. A batch whose
upstream call fails is logged and skipped; its entities are
left untouched. Results of each successful batch are
persisted before the next batch is fetched.

============================================================
"""

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Set

from core.clock import ClockProtocol, SystemClock
from core.constants import MIN_INTER_MAP_DELAY_SECONDS, UPSTREAM_MAX_BATCH_SIZE
from core.exceptions import UpstreamError
from storage.database import Database
from storage.models.subscriptions import DriverNotification
from storage.repositories.subscriptions import (
    DriverNotificationRepository,
    PositionSnapshotRepository,
)
from upstream.leaderboards import LeaderboardApi
from upstream.types import MapSnapshot


logger = logging.getLogger("notifications.position_diff")


# =============================================================
# TYPES
# =============================================================

class ChangeKind(str, enum.Enum):
    IMPROVED = "improved"
    REGRESSED = "regressed"
    UNCHANGED = "unchanged"
    ABSENT = "absent"


@dataclass
class PositionChange:
    """Outcome of one tracked entity check."""
    notification_id: int
    owning_user: str
    contact_address: str
    map_uid: str
    map_name: str
    player_name: str
    kind: ChangeKind
    old_position: int
    old_score: int
    new_position: Optional[int] = None
    new_score: Optional[int] = None
    deactivated: bool = False

    @property
    def notify(self) -> bool:
        return self.kind == ChangeKind.REGRESSED


@dataclass
class DriverCheckReport:
    """Aggregate of one driver pass."""
    changes: List[PositionChange] = field(default_factory=list)
    failed_batches: int = 0
    failed_map_uids: Set[str] = field(default_factory=set)

    @property
    def regressions(self) -> List[PositionChange]:
        return [c for c in self.changes if c.notify]

    def regressions_by_user(self) -> Dict[str, List[PositionChange]]:
        grouped: Dict[str, List[PositionChange]] = {}
        for change in self.regressions:
            grouped.setdefault(change.owning_user, []).append(change)
        return grouped


@dataclass
class ActivityReport:
    """Aggregate of one inaccurate mapper pass."""
    active_map_uids: List[str] = field(default_factory=list)
    failed_batches: int = 0
    total_batches: int = 0

    @property
    def all_failed(self) -> bool:
        return self.total_batches > 0 and self.failed_batches == self.total_batches


# =============================================================
# DIFF
# =============================================================

def diff_position(
    notification: DriverNotification,
    snapshot: MapSnapshot,
    top_n_cutoff: int,
) -> PositionChange:
    """Classify one tracked player against a map snapshot."""
    change = PositionChange(
        notification_id=notification.id,
        owning_user=notification.owning_user,
        contact_address=notification.contact_address,
        map_uid=notification.map_uid,
        map_name=notification.map_name or notification.map_uid,
        player_name=notification.tracked_player_name or notification.tracked_player_identity,
        kind=ChangeKind.ABSENT,
        old_position=notification.last_known_position,
        old_score=notification.last_known_score,
    )

    entry = snapshot.find(notification.tracked_player_identity, notification.tracked_player_name)
    if entry is None:
        return change

    change.new_position = entry.position
    change.new_score = entry.score

    if entry.position > notification.last_known_position or entry.score > notification.last_known_score:
        change.kind = ChangeKind.REGRESSED
    elif entry.position < notification.last_known_position or entry.score < notification.last_known_score:
        change.kind = ChangeKind.IMPROVED
    else:
        change.kind = ChangeKind.UNCHANGED

    if entry.position > top_n_cutoff:
        change.kind = ChangeKind.REGRESSED
        change.deactivated = True

    return change


def _chunks(items: Sequence[str], size: int) -> List[List[str]]:
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


# =============================================================
# ENGINE
# =============================================================

class PositionDiffEngine:
    """Batched position checks with per-batch persistence."""

    def __init__(
        self,
        database: Database,
        leaderboards: LeaderboardApi,
        clock: Optional[ClockProtocol] = None,
        batch_size: int = UPSTREAM_MAX_BATCH_SIZE,
        top_n_cutoff: int = 10000,
        pacing_seconds: float = MIN_INTER_MAP_DELAY_SECONDS,
    ) -> None:
        self._database = database
        self._leaderboards = leaderboards
        self._clock = clock or SystemClock()
        self._batch_size = min(batch_size, UPSTREAM_MAX_BATCH_SIZE)
        self._top_n_cutoff = top_n_cutoff
        self._pacing = max(pacing_seconds, MIN_INTER_MAP_DELAY_SECONDS)

    async def _fetch_batch(self, batch: List[str]) -> Optional[Dict[str, MapSnapshot]]:
        """One batched call; None when it failed."""
        try:
            return await self._leaderboards.get_positions(batch)
        except UpstreamError as e:
            logger.error(f"Position batch of {len(batch)} maps failed, skipping: {e.message}")
            return None
        finally:
            await asyncio.sleep(self._pacing)

    async def check_drivers(self, notifications: List[DriverNotification]) -> DriverCheckReport:
        """Check every active driver notification, grouped by map."""
        groups: Dict[str, List[DriverNotification]] = {}
        for notification in notifications:
            groups.setdefault(notification.map_uid, []).append(notification)

        report = DriverCheckReport()
        batches = _chunks(list(groups), self._batch_size)
        logger.info(f"Checking {len(notifications)} notifications on {len(groups)} maps in {len(batches)} batches")

        for number, batch in enumerate(batches, start=1):
            snapshots = await self._fetch_batch(batch)
            if snapshots is None:
                report.failed_batches += 1
                report.failed_map_uids.update(batch)
                continue

            checked_at = self._clock.now()
            with self._database.transaction() as session:
                repo = DriverNotificationRepository(session, self._clock)
                for map_uid in batch:
                    snapshot = snapshots.get(map_uid)
                    if snapshot is None:
                        continue
                    for notification in groups[map_uid]:
                        change = diff_position(notification, snapshot, self._top_n_cutoff)
                        self._persist(repo, change, checked_at)
                        report.changes.append(change)

            logger.debug(f"Batch {number}/{len(batches)} applied")

        logger.info(
            f"Driver check done: {len(report.regressions)} regressions, "
            f"{report.failed_batches} failed batches"
        )
        return report

    def _persist(
        self,
        repo: DriverNotificationRepository,
        change: PositionChange,
        checked_at: datetime,
    ) -> None:
        repo.record_observation(
            change.notification_id,
            checked_at=checked_at,
            position=change.new_position,
            score=change.new_score,
            deactivate=change.deactivated,
        )
        if change.deactivated:
            logger.info(
                f"Notification {change.notification_id} deactivated: "
                f"position {change.new_position} past top {self._top_n_cutoff}"
            )

    async def check_new_activity(self, map_uids: Sequence[str]) -> ActivityReport:
        """
        Report maps where more players are ranked than at the last
        snapshot, or the best score dropped.

        The first observation of a map stores a baseline and is
        not reported.
        """
        report = ActivityReport()
        unique = list(dict.fromkeys(map_uids))

        batches = _chunks(unique, self._batch_size)
        report.total_batches = len(batches)

        for batch in batches:
            snapshots = await self._fetch_batch(batch)
            if snapshots is None:
                report.failed_batches += 1
                continue

            with self._database.transaction() as session:
                repo = PositionSnapshotRepository(session, self._clock)
                for map_uid in batch:
                    snapshot = snapshots.get(map_uid)
                    if snapshot is None or snapshot.best_score is None:
                        continue
                    previous = repo.get(map_uid)
                    if previous is not None and (
                        snapshot.ranked_count > previous.ranked_count
                        or snapshot.best_score < previous.best_score
                    ):
                        report.active_map_uids.append(map_uid)
                    repo.save(map_uid, snapshot.ranked_count, snapshot.best_score)

        return report
