"""
Storage Models Package.

ORM models for the record tracker database, organized by domain.

============================================================
MODEL ORGANIZATION
============================================================

Jobs (jobs.py)
- MapSearchJob

Subscriptions (subscriptions.py)
- MapperAlert
- DriverNotification
- MapPositionSnapshot

Digest (digest.py)
- DailyDigestRecord
- NotificationHistory

Credentials (tokens.py)
- UpstreamToken

============================================================
"""

from storage.models.base import Base, TimestampMixin
from storage.models.digest import (
    DailyDigestRecord,
    DigestField,
    HistoryStatus,
    NotificationHistory,
    NotificationType,
)
from storage.models.jobs import JOB_TRANSITIONS, JobStatus, MapSearchJob
from storage.models.subscriptions import (
    AlertMode,
    DriverNotification,
    MapperAlert,
    MapPositionSnapshot,
    NotificationStatus,
)
from storage.models.tokens import UpstreamToken

__all__ = [
    "Base",
    "TimestampMixin",
    "MapSearchJob",
    "JobStatus",
    "JOB_TRANSITIONS",
    "MapperAlert",
    "AlertMode",
    "DriverNotification",
    "NotificationStatus",
    "MapPositionSnapshot",
    "DailyDigestRecord",
    "DigestField",
    "NotificationHistory",
    "NotificationType",
    "HistoryStatus",
    "UpstreamToken",
]
