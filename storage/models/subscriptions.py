"""
Subscription ORM Models.

============================================================
PURPOSE
============================================================
Rows read by the daily pipelines. Creation and deletion belong
to the account/CRUD layer; the pipelines only touch the fields
listed as core-owned below.

============================================================
MODELS
============================================================
- MapperAlert: mapper wants new-record digests for their maps
    core-owned: mode, tracked_map_count
- DriverNotification: driver wants to know when overtaken
    core-owned: last_known_position, last_known_score,
                status, last_checked_at
- MapPositionSnapshot: last seen ranking summary per map,
    used by inaccurate mapper checks

============================================================
"""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from storage.models.base import Base, TimestampMixin


class AlertMode(str, enum.Enum):
    """Cost/accuracy mode of a mapper check."""

    ACCURATE = "accurate"
    INACCURATE = "inaccurate"


class NotificationStatus(str, enum.Enum):
    """Driver notification activity."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class MapperAlert(Base, TimestampMixin):
    """
    Mapper alert subscription.

    ============================================================
    DATA LIFECYCLE
    ============================================================
    - Created/deleted by the CRUD layer
    - mode and tracked_map_count rewritten by the mode selector
      on every daily run (idempotent)

    ============================================================
    """

    __tablename__ = "mapper_alerts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    owning_user: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Account that receives the digest"
    )

    subject_username: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Mapper (map author) being tracked"
    )

    contact_address: Mapped[str] = mapped_column(
        String(320),
        nullable=False,
        comment="Email address for the digest"
    )

    mode: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=AlertMode.ACCURATE.value,
        comment="accurate or inaccurate"
    )

    tracked_map_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Maps published by the mapper at the last run"
    )

    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("owning_user", "subject_username", name="uq_mapper_alert_user_subject"),
        Index("idx_mapper_alerts_subject", "subject_username"),
    )

    @property
    def alert_mode(self) -> AlertMode:
        return AlertMode(self.mode)


class DriverNotification(Base, TimestampMixin):
    """
    Driver position subscription on one map.

    ============================================================
    DATA LIFECYCLE
    ============================================================
    - Created by the CRUD layer while the player is in the top-N
    - Position/score/status/last_checked_at written only by the
      position diff engine
    - status active -> inactive is one-way for the core

    ============================================================
    """

    __tablename__ = "driver_notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    owning_user: Mapped[str] = mapped_column(String(255), nullable=False)

    contact_address: Mapped[str] = mapped_column(String(320), nullable=False)

    map_uid: Mapped[str] = mapped_column(String(255), nullable=False)

    map_name: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    tracked_player_identity: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Upstream account id of the tracked player"
    )

    tracked_player_name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Display name, fallback match key"
    )

    last_known_position: Mapped[int] = mapped_column(Integer, nullable=False)

    last_known_score: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Time in milliseconds, lower is better"
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=NotificationStatus.ACTIVE.value,
    )

    last_checked_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        UniqueConstraint(
            "owning_user", "map_uid", "tracked_player_identity",
            name="uq_driver_notification_user_map_player",
        ),
        Index("idx_driver_notifications_status", "status"),
        Index("idx_driver_notifications_map_uid", "map_uid"),
    )


class MapPositionSnapshot(Base):
    """
    Ranking summary of one map at the last inaccurate check.

    A map counts as having new records when more players are
    ranked than before or the best score dropped.
    """

    __tablename__ = "map_position_snapshots"

    map_uid: Mapped[str] = mapped_column(String(255), primary_key=True)

    ranked_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Highest position present in the snapshot"
    )

    best_score: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Lowest (best) score present in the snapshot"
    )

    last_checked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
