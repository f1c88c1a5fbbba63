"""
Daily Check Processor.

============================================================
RESPONSIBILITY
============================================================
Handler for scheduler queue messages.

mapper_check (one per mapper alert):
1. List the mapper's maps
2. Mode Selector decides and persists accurate/inaccurate
3. accurate: paced per-map scan of the last day, names
   resolved, records formatted per map
   inaccurate: batched positions, maps with new activity
4. Non-empty content is appended to the user's mapper_content

driver_check (one per run):
1. All active driver notifications, batched by map
2. Regressions formatted per user into driver_content

Every check writes a notification_history row. A check that
failed for technical reasons is recorded as technical_error,
never as no_new_times.

============================================================
"""

import logging
from typing import Dict, List, Optional

from core.clock import ClockProtocol, SystemClock
from core.config import NotificationConfig
from core.constants import TimeWindow
from core.exceptions import TrackerException, UpstreamError
from storage.database import Database
from storage.models.digest import HistoryStatus, NotificationType
from storage.models.subscriptions import AlertMode, DriverNotification, MapperAlert
from storage.repositories.digest import NotificationHistoryRepository
from storage.repositories.subscriptions import (
    DriverNotificationRepository,
    MapperAlertRepository,
)
from upstream.map_index import MapIndexClient
from upstream.name_resolver import PlayerNameResolver
from workers.messages import SchedulerMessage
from workers.records import LeaderboardScanner
from notifications.digest import DigestAggregator
from notifications.formatting import (
    format_activity_content,
    format_mapper_content,
    format_position_change,
)
from notifications.mode_selector import ModeSelector
from notifications.position_diff import PositionChange, PositionDiffEngine


logger = logging.getLogger("notifications.checks")


class DailyCheckProcessor:
    """Runs mapper and driver checks and feeds the digest."""

    def __init__(
        self,
        database: Database,
        map_index: MapIndexClient,
        scanner: LeaderboardScanner,
        resolver: PlayerNameResolver,
        diff_engine: PositionDiffEngine,
        aggregator: DigestAggregator,
        selector: Optional[ModeSelector] = None,
        config: Optional[NotificationConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        self._database = database
        self._map_index = map_index
        self._scanner = scanner
        self._resolver = resolver
        self._diff_engine = diff_engine
        self._aggregator = aggregator
        self._config = config or NotificationConfig()
        self._selector = selector or ModeSelector(self._config.accurate_map_threshold)
        self._clock = clock or SystemClock()

    async def handle(self, message: SchedulerMessage) -> None:
        if message.kind == "mapper_check":
            with self._database.transaction() as session:
                alerts = MapperAlertRepository(session, self._clock).find_for_message(
                    message.subject, message.contact
                )
            if not alerts:
                logger.warning(f"No active mapper alert for {message.subject}, dropping message")
                return
            for alert in alerts:
                await self.check_mapper(alert)
        else:
            await self.check_drivers()

    # =========================================================
    # MAPPER
    # =========================================================

    async def check_mapper(self, alert: MapperAlert) -> HistoryStatus:
        username = alert.subject_username
        logger.info(f"Mapper check started: {username} (alert {alert.id})")

        try:
            maps = await self._map_index.list_maps(username)
            with self._database.transaction() as session:
                mode = self._selector.apply(session, alert, len(maps))

            if mode == AlertMode.ACCURATE:
                content, found = await self._accurate_content(maps)
            else:
                content, found = await self._inaccurate_content(maps)
        except TrackerException as e:
            logger.error(f"Mapper check failed for {username}: {e.message}")
            self._record_history(
                alert.owning_user, username, NotificationType.MAPPER_ALERT,
                HistoryStatus.TECHNICAL_ERROR, message=e.message,
            )
            return HistoryStatus.TECHNICAL_ERROR

        if not content:
            logger.info(f"No new times for {username}")
            self._record_history(
                alert.owning_user, username, NotificationType.MAPPER_ALERT,
                HistoryStatus.NO_NEW_TIMES,
            )
            return HistoryStatus.NO_NEW_TIMES

        self._aggregator.add_mapper_section(
            alert.owning_user, content, contact_address=alert.contact_address
        )
        self._record_history(
            alert.owning_user, username, NotificationType.MAPPER_ALERT,
            HistoryStatus.PROCESSING, records_found=found,
        )
        logger.info(f"Mapper check done for {username}: {found} new entries")
        return HistoryStatus.PROCESSING

    async def _accurate_content(self, maps) -> tuple:
        results = await self._scanner.scan(maps, TimeWindow.DAY)
        if not results:
            return "", 0

        account_ids = {r.account_id for result in results for r in result.records}
        names = await self._resolver.resolve(account_ids)
        content = format_mapper_content(
            results,
            names,
            max_records_per_map=self._config.max_new_records_per_map,
            popular_map_message=self._config.popular_map_message,
        )
        return content, sum(len(result.records) for result in results)

    async def _inaccurate_content(self, maps) -> tuple:
        names = {info.map_uid: info.name for info in maps}
        report = await self._diff_engine.check_new_activity(list(names))
        if report.all_failed:
            raise UpstreamError(
                f"All {report.total_batches} position batches failed",
                context={"maps": len(names)},
            )
        if not report.active_map_uids:
            return "", 0
        content = format_activity_content([names[uid] for uid in report.active_map_uids])
        return content, len(report.active_map_uids)

    # =========================================================
    # DRIVERS
    # =========================================================

    async def check_drivers(self) -> Dict[str, HistoryStatus]:
        with self._database.transaction() as session:
            notifications = DriverNotificationRepository(session, self._clock).list_active()

        if not notifications:
            logger.info("No active driver notifications")
            return {}

        by_user: Dict[str, List[DriverNotification]] = {}
        for notification in notifications:
            by_user.setdefault(notification.owning_user, []).append(notification)

        report = await self._diff_engine.check_drivers(notifications)
        regressions = report.regressions_by_user()
        outcomes: Dict[str, HistoryStatus] = {}

        for user, tracked in by_user.items():
            changes = regressions.get(user, [])
            if changes:
                self._aggregator.set_driver_content(
                    user,
                    self._driver_content(changes),
                    contact_address=changes[0].contact_address,
                )
                status = HistoryStatus.PROCESSING
            elif {n.map_uid for n in tracked} <= report.failed_map_uids:
                logger.error(f"Driver check failed for {user}: every tracked map batch failed")
                status = HistoryStatus.TECHNICAL_ERROR
            else:
                status = HistoryStatus.NO_NEW_TIMES

            self._record_history(
                user, user, NotificationType.DRIVER_NOTIFICATION, status,
                records_found=len(changes),
            )
            outcomes[user] = status

        logger.info(f"Driver check done for {len(by_user)} users")
        return outcomes

    @staticmethod
    def _driver_content(changes: List[PositionChange]) -> str:
        return "\n".join(
            format_position_change(
                c.map_name, c.player_name,
                c.old_position, c.new_position,
                c.old_score, c.new_score,
            )
            for c in changes
        )

    # =========================================================
    # HISTORY
    # =========================================================

    def _record_history(
        self,
        owning_user: str,
        subject: str,
        notification_type: NotificationType,
        status: HistoryStatus,
        records_found: int = 0,
        message: Optional[str] = None,
    ) -> None:
        with self._database.transaction() as session:
            NotificationHistoryRepository(session, self._clock).record(
                owning_user,
                subject=subject,
                notification_type=notification_type,
                status=status,
                processing_date=self._clock.today(),
                records_found=records_found,
                message=message,
            )
