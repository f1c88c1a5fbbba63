"""
Subscription Repositories.

============================================================
PURPOSE
============================================================
Read/update access to mapper alerts, driver notifications and
map position snapshots for the daily pipelines.

Only the core-owned fields are written here; create() helpers
exist for the account layer and for seeding.

============================================================
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from core.clock import ClockProtocol
from storage.models.subscriptions import (
    AlertMode,
    DriverNotification,
    MapperAlert,
    MapPositionSnapshot,
    NotificationStatus,
)
from storage.repositories.base import BaseRepository


# ============================================================
# MAPPER ALERTS
# ============================================================

class MapperAlertRepository(BaseRepository[MapperAlert]):
    """Repository for MapperAlert records."""

    def __init__(self, session: Session, clock: Optional[ClockProtocol] = None) -> None:
        super().__init__(session, MapperAlert, "MapperAlertRepository", clock)

    def create(
        self,
        owning_user: str,
        subject_username: str,
        contact_address: str,
    ) -> MapperAlert:
        return self._add(MapperAlert(
            owning_user=owning_user,
            subject_username=subject_username,
            contact_address=contact_address,
            mode=AlertMode.ACCURATE.value,
            tracked_map_count=0,
            is_active=True,
        ))

    def get(self, alert_id: int) -> Optional[MapperAlert]:
        return self._get_by_id(alert_id)

    def list_active(self) -> List[MapperAlert]:
        stmt = (
            select(MapperAlert)
            .where(MapperAlert.is_active.is_(True))
            .order_by(MapperAlert.id)
        )
        return self._execute_query(stmt)

    def find_for_message(self, subject_username: str, contact_address: str) -> List[MapperAlert]:
        """Active alerts matching a scheduler trigger message."""
        stmt = (
            select(MapperAlert)
            .where(
                MapperAlert.subject_username == subject_username,
                MapperAlert.contact_address == contact_address,
                MapperAlert.is_active.is_(True),
            )
            .order_by(MapperAlert.id)
        )
        return self._execute_query(stmt)

    def update_mode(self, alert_id: int, mode: AlertMode, tracked_map_count: int) -> None:
        """Persist the mode decision. Re-running with the same input is a no-op."""
        stmt = (
            update(MapperAlert)
            .where(MapperAlert.id == alert_id)
            .values(mode=mode.value, tracked_map_count=tracked_map_count)
        )
        self._execute_write(stmt, "update_mode")


# ============================================================
# DRIVER NOTIFICATIONS
# ============================================================

class DriverNotificationRepository(BaseRepository[DriverNotification]):
    """Repository for DriverNotification records."""

    def __init__(self, session: Session, clock: Optional[ClockProtocol] = None) -> None:
        super().__init__(session, DriverNotification, "DriverNotificationRepository", clock)

    def create(
        self,
        owning_user: str,
        contact_address: str,
        map_uid: str,
        tracked_player_identity: str,
        last_known_position: int,
        last_known_score: int,
        map_name: str = "",
        tracked_player_name: Optional[str] = None,
    ) -> DriverNotification:
        return self._add(DriverNotification(
            owning_user=owning_user,
            contact_address=contact_address,
            map_uid=map_uid,
            map_name=map_name,
            tracked_player_identity=tracked_player_identity,
            tracked_player_name=tracked_player_name,
            last_known_position=last_known_position,
            last_known_score=last_known_score,
            status=NotificationStatus.ACTIVE.value,
        ))

    def get(self, notification_id: int) -> Optional[DriverNotification]:
        return self._get_by_id(notification_id)

    def list_active(self, owning_user: Optional[str] = None) -> List[DriverNotification]:
        stmt = select(DriverNotification).where(
            DriverNotification.status == NotificationStatus.ACTIVE.value
        )
        if owning_user is not None:
            stmt = stmt.where(DriverNotification.owning_user == owning_user)
        return self._execute_query(stmt.order_by(DriverNotification.id))

    def record_observation(
        self,
        notification_id: int,
        checked_at: datetime,
        position: Optional[int] = None,
        score: Optional[int] = None,
        deactivate: bool = False,
    ) -> None:
        """
        Write the outcome of one position check.

        position/score are left untouched when None (player absent
        from the ranking).
        """
        values = {"last_checked_at": checked_at}
        if position is not None:
            values["last_known_position"] = position
        if score is not None:
            values["last_known_score"] = score
        if deactivate:
            values["status"] = NotificationStatus.INACTIVE.value

        stmt = (
            update(DriverNotification)
            .where(DriverNotification.id == notification_id)
            .values(**values)
        )
        self._execute_write(stmt, "record_observation")


# ============================================================
# MAP POSITION SNAPSHOTS
# ============================================================

class PositionSnapshotRepository(BaseRepository[MapPositionSnapshot]):
    """Repository for MapPositionSnapshot records."""

    def __init__(self, session: Session, clock: Optional[ClockProtocol] = None) -> None:
        super().__init__(session, MapPositionSnapshot, "PositionSnapshotRepository", clock)

    def get(self, map_uid: str) -> Optional[MapPositionSnapshot]:
        return self._get_by_id(map_uid)

    def save(self, map_uid: str, ranked_count: int, best_score: int) -> None:
        """Insert or replace the snapshot of one map."""
        checked_at = self._clock.now()
        stmt = self._dialect_insert().values(
            map_uid=map_uid,
            ranked_count=ranked_count,
            best_score=best_score,
            last_checked_at=checked_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["map_uid"],
            set_={
                "ranked_count": stmt.excluded.ranked_count,
                "best_score": stmt.excluded.best_score,
                "last_checked_at": stmt.excluded.last_checked_at,
            },
        )
        self._execute_write(stmt, "save_snapshot")
