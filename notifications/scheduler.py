"""
Daily Scheduler.

============================================================
RESPONSIBILITY
============================================================
Starts the daily run.

1. Purge expired jobs and digest records
2. Enqueue one mapper_check per active mapper alert
3. Enqueue one driver_check

An enqueue failure for one alert is logged and the rest are
still enqueued.

============================================================
"""

import logging
from dataclasses import dataclass
from typing import Optional

from core.clock import ClockProtocol, SystemClock
from storage.database import Database
from storage.repositories.digest import DigestRepository
from storage.repositories.jobs import JobRepository
from storage.repositories.subscriptions import MapperAlertRepository
from workers.messages import SchedulerMessage
from workers.queue import SingleConsumerQueue


logger = logging.getLogger("notifications.scheduler")


@dataclass
class ScheduleReport:
    mapper_checks: int = 0
    driver_checks: int = 0
    enqueue_failures: int = 0
    purged_jobs: int = 0
    purged_digests: int = 0


class DailyScheduler:
    """Fan-out of the daily checks onto the scheduler queue."""

    def __init__(
        self,
        database: Database,
        queue: SingleConsumerQueue[SchedulerMessage],
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        self._database = database
        self._queue = queue
        self._clock = clock or SystemClock()

    async def run(self) -> ScheduleReport:
        report = ScheduleReport()

        with self._database.transaction() as session:
            report.purged_jobs = JobRepository(session, self._clock).purge_expired()
            report.purged_digests = DigestRepository(session, self._clock).purge_expired()
            alerts = MapperAlertRepository(session, self._clock).list_active()

        logger.info(f"Scheduling {len(alerts)} mapper alerts")

        for alert in alerts:
            try:
                await self._queue.enqueue(SchedulerMessage(
                    subject=alert.subject_username,
                    contact=alert.contact_address,
                    kind="mapper_check",
                ))
                report.mapper_checks += 1
            except Exception as e:
                logger.error(f"Failed to enqueue mapper check for alert {alert.id}: {e}")
                report.enqueue_failures += 1

        try:
            await self._queue.enqueue(SchedulerMessage(subject="drivers", kind="driver_check"))
            report.driver_checks = 1
        except Exception as e:
            logger.error(f"Failed to enqueue driver check: {e}")
            report.enqueue_failures += 1

        logger.info(
            f"Scheduled {report.mapper_checks} mapper checks and "
            f"{report.driver_checks} driver check ({report.enqueue_failures} failures)"
        )
        return report
