"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Error types shared by the upstream client, workers, daily
checks and dispatcher.

The classification decides what callers do:
- TRANSIENT       -> RetryPolicy waits and tries again
- NON_RECOVERABLE -> the map / batch / user is skipped, or
                     the job is failed at once

============================================================
EXCEPTION HIERARCHY
============================================================
TrackerException (base)
├── ConfigurationError
├── UpstreamError                 non-recoverable (4xx)
│   ├── UpstreamAuthError         transient (401/403)
│   ├── UpstreamTransientError    transient (429, 5xx, network)
│   └── UpstreamDataError         non-recoverable (bad body)
├── JobError
│   ├── JobStateError
│   └── JobTimeoutError
├── DeliveryError
└── RequestLimitError

============================================================
"""

from enum import Enum
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class Severity(Enum):
    """How loudly an error should be surfaced in logs."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ErrorClassification(Enum):
    """Whether retrying the same call can succeed."""

    TRANSIENT = "transient"
    NON_RECOVERABLE = "non_recoverable"


def _with_context(kwargs: Dict[str, Any], **fields: Any) -> Dict[str, Any]:
    """Merge non-empty fields into kwargs['context']."""
    context = dict(kwargs.pop("context", None) or {})
    context.update({k: v for k, v in fields.items() if v is not None and v != ""})
    kwargs["context"] = context
    return kwargs


# ============================================================
# BASE EXCEPTION
# ============================================================

class TrackerException(Exception):
    """
    Base of every tracker error.

    Carries a message, a severity, a free-form context dict
    (logged as structured extra), a classification and the
    original cause, if any.
    """

    default_severity: Severity = Severity.MEDIUM
    default_classification: ErrorClassification = ErrorClassification.NON_RECOVERABLE

    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        classification: Optional[ErrorClassification] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.severity = severity or self.default_severity
        self.classification = classification or self.default_classification
        self.context = dict(context or {})
        self.cause = cause
        self.raised_at = datetime.now(timezone.utc)

        if cause is not None:
            self.context.setdefault("cause_type", type(cause).__name__)
            self.context.setdefault("cause_message", str(cause))

    @property
    def is_recoverable(self) -> bool:
        return self.classification is ErrorClassification.TRANSIENT

    def to_dict(self) -> Dict[str, Any]:
        """Structured form for `extra={"context": ...}` logging."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.value,
            "classification": self.classification.value,
            "context": self.context,
            "timestamp": self.raised_at.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }


class ConfigurationError(TrackerException):
    """Missing or malformed setting."""

    default_severity = Severity.HIGH

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        actual_value: Optional[Any] = None,
        **kwargs,
    ):
        shown = None if actual_value is None else str(actual_value)[:100]
        super().__init__(message, **_with_context(kwargs, config_key=config_key, actual_value=shown))


# ============================================================
# UPSTREAM
# ============================================================

class UpstreamError(TrackerException):
    """Leaderboard, OAuth or map index call failed."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(message, **_with_context(kwargs, url=url, status_code=status_code))
        self.url = url
        self.status_code = status_code


class UpstreamAuthError(UpstreamError):
    """Credential rejected even after a forced refresh."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.TRANSIENT


class UpstreamTransientError(UpstreamError):
    default_classification = ErrorClassification.TRANSIENT


class UpstreamDataError(UpstreamError):
    """Response body could not be decoded or lacks required fields."""

    default_severity = Severity.LOW


# ============================================================
# JOBS
# ============================================================

class JobError(TrackerException):

    def __init__(self, message: str, job_id: Optional[str] = None, **kwargs):
        super().__init__(message, **_with_context(kwargs, job_id=job_id))
        self.job_id = job_id


class JobStateError(JobError):
    """Transition not allowed from the job's current status."""


class JobTimeoutError(JobError):
    """Handler ran past the queue's execution timeout."""

    default_severity = Severity.HIGH


# ============================================================
# DELIVERY / REQUESTS
# ============================================================

class DeliveryError(TrackerException):
    """Digest email was not accepted by the email API."""

    default_classification = ErrorClassification.TRANSIENT


class RequestLimitError(TrackerException):
    """Too many on-demand searches for one username in the last minute."""

    default_severity = Severity.LOW

    def __init__(self, message: str, username: Optional[str] = None, **kwargs):
        super().__init__(message, **_with_context(kwargs, username=username))
        self.username = username


__all__ = [
    "Severity",
    "ErrorClassification",
    "TrackerException",
    "ConfigurationError",
    "UpstreamError",
    "UpstreamAuthError",
    "UpstreamTransientError",
    "UpstreamDataError",
    "JobError",
    "JobStateError",
    "JobTimeoutError",
    "DeliveryError",
    "RequestLimitError",
]
