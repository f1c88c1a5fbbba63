"""
Core Module - Constants.

============================================================
RESPONSIBILITY
============================================================
Defines tracker-wide constants that are contracts rather than
tunables. Tunables live in core.config.

============================================================
"""

from enum import Enum


# ============================================================
# SYSTEM
# ============================================================

SYSTEM_NAME = "record-tracker"
SYSTEM_VERSION = "1.0.0"

# ============================================================
# TIME
# ============================================================

MS_PER_DAY = 86_400_000
SECONDS_PER_DAY = 86_400


class TimeWindow(str, Enum):
    """Lookback window for record searches."""

    DAY = "1d"
    WEEK = "1w"
    MONTH = "1m"

    @property
    def milliseconds(self) -> int:
        """Window length in milliseconds, measured back from now."""
        return _WINDOW_DAYS[self] * MS_PER_DAY


_WINDOW_DAYS = {
    TimeWindow.DAY: 1,
    TimeWindow.WEEK: 7,
    TimeWindow.MONTH: 30,
}

# ============================================================
# UPSTREAM CONTRACTS
# ============================================================

# Documented partner limit; enforced by serialized consumers
# plus the pacing delay, not by the client.
UPSTREAM_REQUESTS_PER_SECOND = 2

# Hard upper bound on ids per batched upstream call
UPSTREAM_MAX_BATCH_SIZE = 50

# Minimum pause after each per-map leaderboard fetch
MIN_INTER_MAP_DELAY_SECONDS = 0.5

# Slack a job timeout must leave beyond its worst-case sleeps
JOB_TIMEOUT_HEADROOM_SECONDS = 300

# Token providers
PROVIDER_LIVE = "auth"
PROVIDER_OAUTH = "oauth2"
TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"


__all__ = [
    "SYSTEM_NAME",
    "SYSTEM_VERSION",
    "MS_PER_DAY",
    "SECONDS_PER_DAY",
    "TimeWindow",
    "UPSTREAM_REQUESTS_PER_SECOND",
    "UPSTREAM_MAX_BATCH_SIZE",
    "MIN_INTER_MAP_DELAY_SECONDS",
    "JOB_TIMEOUT_HEADROOM_SECONDS",
    "PROVIDER_LIVE",
    "PROVIDER_OAUTH",
    "TOKEN_TYPE_ACCESS",
    "TOKEN_TYPE_REFRESH",
]
