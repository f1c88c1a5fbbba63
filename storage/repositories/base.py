"""
Base Repository.

============================================================
PURPOSE
============================================================
Shared plumbing for the tracker repositories.

- Session and clock are injected; repositories flush but never
  commit (Database.transaction() owns the boundary)
- Every SQLAlchemy error is re-raised as a RepositoryException
- INSERT ... ON CONFLICT for PostgreSQL and SQLite, used by the
  field-scoped digest upsert, the token cache and snapshots

============================================================
"""

import logging
from abc import ABC
from contextlib import contextmanager
from typing import Any, Generic, Iterator, List, Optional, Type, TypeVar

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError as SQLAlchemyIntegrityError
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from core.clock import ClockProtocol, SystemClock
from storage.models.base import Base
from storage.repositories.exceptions import (
    ConnectionError,
    DuplicateRecordError,
    IntegrityError,
    QueryError,
    RepositoryException,
)


T = TypeVar("T", bound=Base)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class BaseRepository(ABC, Generic[T]):
    """
    Repository over one ORM model.

    Subclasses:
        class JobRepository(BaseRepository[MapSearchJob]):
            def __init__(self, session, clock=None):
                super().__init__(session, MapSearchJob, "JobRepository", clock)
    """

    def __init__(
        self,
        session: Session,
        model_class: Type[T],
        repository_name: str,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        self._session = session
        self._model_class = model_class
        self._repository_name = repository_name
        self._clock = clock or SystemClock()
        self._logger = logging.getLogger(f"repository.{repository_name}")

    @property
    def session(self) -> Session:
        return self._session

    # =========================================================
    # ERROR TRANSLATION
    # =========================================================

    def _translate(self, error: SQLAlchemyError, operation: str) -> RepositoryException:
        name = self._repository_name
        if isinstance(error, OperationalError):
            return ConnectionError(name, operation, str(error))
        if isinstance(error, SQLAlchemyIntegrityError):
            detail = str(error.orig)
            if "unique" in detail.lower() or "duplicate" in detail.lower():
                return DuplicateRecordError(name, operation, detail)
            return IntegrityError(name, operation, detail)
        return QueryError(name, operation, str(error))

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        """Wrap SQLAlchemy failures of one repository operation."""
        try:
            yield
        except SQLAlchemyError as e:
            self._logger.error(f"{operation} failed: {e}", exc_info=True)
            raise self._translate(e, operation) from e

    # =========================================================
    # HELPERS
    # =========================================================

    def _add(self, entity: T) -> T:
        with self._guard("add"):
            self._session.add(entity)
            self._session.flush()
        return entity

    def _get_by_id(self, record_id: Any) -> Optional[T]:
        """Primary key lookup; composite keys are passed as a tuple."""
        with self._guard("get"):
            return self._session.get(self._model_class, record_id)

    def _count(self, *criteria: Any) -> int:
        stmt = select(func.count()).select_from(self._model_class)
        if criteria:
            stmt = stmt.where(*criteria)
        with self._guard("count"):
            return self._session.execute(stmt).scalar() or 0

    def _execute_query(self, stmt: Any) -> List[Any]:
        with self._guard("query"):
            return list(self._session.execute(stmt).scalars().all())

    def _execute_scalar(self, stmt: Any) -> Optional[T]:
        with self._guard("query"):
            return self._session.execute(stmt).scalar_one_or_none()

    def _execute_write(self, stmt: Any, operation: str) -> int:
        """Run an INSERT / UPDATE / DELETE; returns the matched row count."""
        with self._guard(operation):
            result = self._session.execute(stmt)
            self._session.flush()
        return result.rowcount or 0

    def _dialect_insert(self) -> Any:
        """INSERT construct exposing on_conflict_do_update() for the bound dialect."""
        dialect = self._session.get_bind().dialect.name
        insert = _UPSERT_DIALECTS.get(dialect)
        if insert is None:
            raise QueryError(self._repository_name, "upsert", f"no upsert support for {dialect}")
        return insert(self._model_class)
