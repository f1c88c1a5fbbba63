"""
Repository Exceptions.

Every SQLAlchemy error raised inside a repository surfaces as
one of these, so nothing above the storage layer imports
sqlalchemy.exc. They are TrackerExceptions: a lost connection
is transient, everything else is not.
"""

from typing import Any, Dict, Optional

from core.exceptions import ErrorClassification, Severity, TrackerException


class RepositoryException(TrackerException):
    """Base of storage failures; message is prefixed with [repository] operation."""

    def __init__(
        self,
        message: str,
        repository_name: str,
        operation: str,
        details: Optional[Dict[str, Any]] = None,
        **kwargs,
    ) -> None:
        context = {**(details or {}), "repository": repository_name, "operation": operation}
        super().__init__(f"[{repository_name}] {operation}: {message}", context=context, **kwargs)
        self.repository_name = repository_name
        self.operation = operation


class RecordNotFoundError(RepositoryException):
    """Unknown or expired record."""

    default_severity = Severity.LOW

    def __init__(self, repository_name: str, record_id: Any, id_field: str = "id") -> None:
        super().__init__(
            f"no record with {id_field}={record_id}",
            repository_name,
            "get",
            details={id_field: str(record_id)},
        )
        self.record_id = record_id


class DuplicateRecordError(RepositoryException):

    def __init__(self, repository_name: str, operation: str, detail: str) -> None:
        super().__init__(f"duplicate record ({detail})", repository_name, operation)


class IntegrityError(RepositoryException):

    def __init__(self, repository_name: str, operation: str, detail: str) -> None:
        super().__init__(f"constraint violated ({detail})", repository_name, operation)


class ConnectionError(RepositoryException):
    """Database unreachable or locked."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.TRANSIENT

    def __init__(self, repository_name: str, operation: str, detail: str) -> None:
        super().__init__(
            f"database unavailable ({detail})", repository_name, operation,
            details={"error": detail},
        )


class QueryError(RepositoryException):

    def __init__(self, repository_name: str, operation: str, detail: str) -> None:
        super().__init__(
            f"statement failed ({detail})", repository_name, operation,
            details={"error": detail},
        )


__all__ = [
    "RepositoryException",
    "RecordNotFoundError",
    "DuplicateRecordError",
    "IntegrityError",
    "ConnectionError",
    "QueryError",
]
