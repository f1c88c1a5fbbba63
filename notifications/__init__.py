"""
Notifications Package.

Daily mapper / driver checks and the once-per-day digest email.

Modules:
- mode_selector: accurate vs. inaccurate mapper mode
- position_diff: batched position checks
- formatting: digest section text
- digest: field-scoped aggregator and email composer
- checks: scheduler queue handler
- scheduler: daily fan-out
- email_sender: outbound email channel
- dispatcher: one send per user per day
"""

from .checks import DailyCheckProcessor
from .digest import ComposedEmail, DigestAggregator, compose_digest
from .dispatcher import DigestDispatcher, DispatchReport
from .email_sender import EmailSender, HttpEmailSender, SendResult
from .mode_selector import ModeSelector
from .position_diff import (
    ActivityReport,
    ChangeKind,
    DriverCheckReport,
    PositionChange,
    PositionDiffEngine,
    diff_position,
)
from .scheduler import DailyScheduler, ScheduleReport

__all__ = [
    "DailyCheckProcessor",
    "ComposedEmail",
    "DigestAggregator",
    "compose_digest",
    "DigestDispatcher",
    "DispatchReport",
    "EmailSender",
    "HttpEmailSender",
    "SendResult",
    "ModeSelector",
    "ActivityReport",
    "ChangeKind",
    "DriverCheckReport",
    "PositionChange",
    "PositionDiffEngine",
    "diff_position",
    "DailyScheduler",
    "ScheduleReport",
]
