"""
Repositories.

All reads and writes of tracker tables go through these
classes. Each takes a Session from Database.transaction() and
flushes without committing; writers only touch the columns
they own, so concurrent check jobs do not clobber each other.

- JobRepository: on-demand map search jobs
- MapperAlertRepository / DriverNotificationRepository: subscriptions
- PositionSnapshotRepository: inaccurate-mode ranking snapshots
- DigestRepository: daily digest records
- NotificationHistoryRepository: check outcomes
- TokenRepository: upstream credential cache
"""

from storage.repositories.base import BaseRepository
from storage.repositories.digest import DigestRepository, NotificationHistoryRepository
from storage.repositories.exceptions import (
    ConnectionError,
    DuplicateRecordError,
    IntegrityError,
    QueryError,
    RecordNotFoundError,
    RepositoryException,
)
from storage.repositories.jobs import JobRepository
from storage.repositories.subscriptions import (
    DriverNotificationRepository,
    MapperAlertRepository,
    PositionSnapshotRepository,
)
from storage.repositories.tokens import TokenRepository

__all__ = [
    "BaseRepository",
    "JobRepository",
    "MapperAlertRepository",
    "DriverNotificationRepository",
    "PositionSnapshotRepository",
    "DigestRepository",
    "NotificationHistoryRepository",
    "TokenRepository",
    "RepositoryException",
    "RecordNotFoundError",
    "DuplicateRecordError",
    "IntegrityError",
    "ConnectionError",
    "QueryError",
]
