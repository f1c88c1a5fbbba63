"""
Mode Selector.

============================================================
RESPONSIBILITY
============================================================
Chooses, per mapper alert, between the accurate check (full
leaderboard per map) and the inaccurate check (batched
positions), from the mapper's current map count.

- map_count <= threshold -> accurate
- map_count >  threshold -> inaccurate

The decision is recomputed and persisted on every run, so a
mapper crossing the threshold switches mode on the next run
and recomputing with an unchanged count changes nothing.

============================================================
"""

import logging

from sqlalchemy.orm import Session

from storage.models.subscriptions import AlertMode, MapperAlert
from storage.repositories.subscriptions import MapperAlertRepository


logger = logging.getLogger("notifications.mode_selector")


class ModeSelector:
    """Map-count threshold policy."""

    def __init__(self, threshold: int = 200) -> None:
        self.threshold = threshold

    def decide(self, map_count: int) -> AlertMode:
        if map_count <= self.threshold:
            return AlertMode.ACCURATE
        return AlertMode.INACCURATE

    def apply(self, session: Session, alert: MapperAlert, map_count: int) -> AlertMode:
        """Decide and persist mode and tracked_map_count on the alert."""
        mode = self.decide(map_count)
        previous = alert.mode

        if previous != mode.value or alert.tracked_map_count != map_count:
            MapperAlertRepository(session).update_mode(alert.id, mode, map_count)

        if previous != mode.value:
            logger.info(
                f"Alert {alert.id} ({alert.subject_username}): {previous} -> {mode.value} "
                f"at {map_count} maps"
            )
        return mode
