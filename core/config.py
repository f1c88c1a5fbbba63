"""
Core Module - Configuration.

============================================================
PURPOSE
============================================================
All configuration for the tracker pipelines.

CRITICAL CONSTRAINTS:
- Fixed-delay retries only (partner contract)
- Pacing delay can never drop below the documented minimum
- Bounded pagination
- A job timeout must cover the full retry cooldown of one
  map plus the pacing sleeps of a maximal scan

============================================================
SOURCES
============================================================
Defaults below, overridden by environment variables
(a .env file is loaded first when present).

============================================================
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

from core.constants import (
    JOB_TIMEOUT_HEADROOM_SECONDS,
    MIN_INTER_MAP_DELAY_SECONDS,
    UPSTREAM_MAX_BATCH_SIZE,
)
from core.exceptions import ConfigurationError


# ============================================================
# UPSTREAM CONFIGURATION
# ============================================================

@dataclass(frozen=True)
class UpstreamConfig:
    """
    Leaderboard / identity service endpoints and credentials.
    """

    live_base_url: str = "https://live-services.trackmania.nadeo.live"
    """Base URL of the leaderboard (live services) API."""

    auth_url: str = "https://prod.trackmania.core.nadeo.online/v2/authentication/token/basic"
    """Full login endpoint for the live services account."""

    refresh_url: str = "https://prod.trackmania.core.nadeo.online/v2/authentication/token/refresh"
    """Refresh endpoint for the live services account."""

    basic_authorization: str = ""
    """Base64 'login:password' used for full login."""

    user_agent: str = "record-tracker / contact@example.com"
    """User agent the partner asks clients to identify with."""

    oauth_base_url: str = "https://api.trackmania.com"
    """Base URL of the public OAuth2 API (display names)."""

    oauth_token_url: str = "https://api.trackmania.com/api/access_token"
    """OAuth2 token endpoint."""

    oauth_client_id: str = ""
    oauth_client_secret: str = ""

    position_url: str = "https://webservices.openplanet.dev/live/leaderboards/position"
    """Batched position endpoint (mapUid[] query)."""

    map_index_url: str = "https://trackmania.exchange/api/maps"
    """Public map index used to list a mapper's maps."""

    token_freshness_seconds: int = 24 * 60 * 60
    """Cached access credential is reused while younger than this."""

    refresh_token_lifetime_seconds: int = 30 * 24 * 60 * 60
    """Expiry stamped on cached refresh credentials."""

    timeout_seconds: float = 30.0
    """Per-request timeout."""


# ============================================================
# WORKER CONFIGURATION
# ============================================================

@dataclass(frozen=True)
class WorkerConfig:
    """
    Map search worker pacing, retries and bounds.
    """

    inter_map_delay_seconds: float = MIN_INTER_MAP_DELAY_SECONDS
    """Sleep after each per-map leaderboard fetch."""

    retry_attempts: int = 5
    """Leaderboard fetch attempts before the job fails."""

    retry_delay_seconds: float = 15 * 60
    """Fixed delay between leaderboard fetch attempts."""

    leaderboard_length: int = 100
    """Entries requested per map leaderboard."""

    max_pages: int = 100
    """Maximum map index pages followed per search."""

    max_maps: int = 2000
    """Maximum maps scanned per search."""

    job_ttl_seconds: int = 24 * 60 * 60
    """Lifetime of a job record."""

    job_timeout_seconds: float = 2 * 60 * 60
    """External execution timeout per job invocation."""

    max_deliveries: int = 3
    """Deliveries of one queue message before it is dropped."""

    requests_per_minute_per_user: int = 2
    """On-demand searches a single username may submit per minute."""

    @property
    def worst_case_sleep_seconds(self) -> float:
        """Retry cooldown of one map plus the pacing of a max_maps scan."""
        retry = (self.retry_attempts - 1) * self.retry_delay_seconds
        pacing = self.max_maps * self.inter_map_delay_seconds
        return retry + pacing


# ============================================================
# NOTIFICATION CONFIGURATION
# ============================================================

@dataclass(frozen=True)
class NotificationConfig:
    """
    Daily path thresholds.
    """

    accurate_map_threshold: int = 200
    """Mappers with at most this many maps use accurate mode."""

    position_batch_size: int = UPSTREAM_MAX_BATCH_SIZE
    """Map ids per batched position call."""

    name_batch_size: int = UPSTREAM_MAX_BATCH_SIZE
    """Account ids per display-name call."""

    driver_top_n_cutoff: int = 10000
    """Tracked drivers ranked past this position become inactive."""

    max_new_records_per_map: int = 20
    """Records listed per map before the popular-map message is used."""

    popular_map_message: str = "This map has more than 20 New Times"

    digest_ttl_days: int = 7
    """Lifetime of a daily digest record."""


# ============================================================
# EMAIL CONFIGURATION
# ============================================================

@dataclass(frozen=True)
class EmailConfig:
    """
    Outbound transactional email API.
    """

    api_url: str = ""
    api_key: str = ""
    from_address: str = "noreply@example.com"
    timeout_seconds: float = 15.0


# ============================================================
# DATABASE CONFIGURATION
# ============================================================

@dataclass(frozen=True)
class DatabaseConfig:
    """
    Database connection.
    """

    url: str = "sqlite:///record_tracker.db"
    echo: bool = False
    pool_pre_ping: bool = True


# ============================================================
# APPLICATION CONFIGURATION
# ============================================================

@dataclass(frozen=True)
class AppConfig:
    """Aggregate configuration."""

    upstream: UpstreamConfig = field(default_factory=UpstreamConfig)
    worker: WorkerConfig = field(default_factory=WorkerConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    email: EmailConfig = field(default_factory=EmailConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "AppConfig":
        """
        Build configuration from environment variables.

        Args:
            env_file: Optional explicit .env path

        Returns:
            AppConfig instance
        """
        load_dotenv(env_file)

        upstream_defaults = UpstreamConfig()
        worker_defaults = WorkerConfig()
        notification_defaults = NotificationConfig()

        upstream = UpstreamConfig(
            live_base_url=os.getenv("LEAD_API", upstream_defaults.live_base_url),
            auth_url=os.getenv("AUTH_API_URL", upstream_defaults.auth_url),
            refresh_url=os.getenv("AUTH_REFRESH_URL", upstream_defaults.refresh_url),
            basic_authorization=os.getenv("AUTHORIZATION", ""),
            user_agent=os.getenv("USER_AGENT", upstream_defaults.user_agent),
            oauth_base_url=os.getenv("OAUTH_API_URL", upstream_defaults.oauth_base_url),
            oauth_token_url=os.getenv("OAUTH_TOKEN_URL", upstream_defaults.oauth_token_url),
            oauth_client_id=os.getenv("OCLIENT_ID", ""),
            oauth_client_secret=os.getenv("OCLIENT_SECRET", ""),
            position_url=os.getenv("POSITION_API_URL", upstream_defaults.position_url),
            map_index_url=os.getenv("MAP_INDEX_URL", upstream_defaults.map_index_url),
        )

        worker = WorkerConfig(
            retry_attempts=_env_int("RETRY_ATTEMPTS", worker_defaults.retry_attempts),
            retry_delay_seconds=_env_float(
                "RETRY_DELAY_SECONDS", worker_defaults.retry_delay_seconds
            ),
            max_pages=_env_int("MAX_MAP_PAGES", worker_defaults.max_pages),
            max_maps=_env_int("MAX_MAPS_PER_SEARCH", worker_defaults.max_maps),
            job_timeout_seconds=_env_float(
                "JOB_TIMEOUT_SECONDS", worker_defaults.job_timeout_seconds
            ),
        )

        notifications = NotificationConfig(
            accurate_map_threshold=_env_int(
                "MAX_MAPS_PER_USER", notification_defaults.accurate_map_threshold
            ),
            driver_top_n_cutoff=_env_int(
                "DRIVER_TOP_N_CUTOFF", notification_defaults.driver_top_n_cutoff
            ),
            max_new_records_per_map=_env_int(
                "MAX_NEW_RECORDS_PER_MAP", notification_defaults.max_new_records_per_map
            ),
        )

        email = EmailConfig(
            api_url=os.getenv("EMAIL_API_URL", ""),
            api_key=os.getenv("EMAIL_API_KEY", ""),
            from_address=os.getenv("EMAIL_FROM", EmailConfig().from_address),
        )

        database = DatabaseConfig(
            url=os.getenv("DATABASE_URL", DatabaseConfig().url),
            echo=os.getenv("DATABASE_ECHO", "").lower() in ("1", "true", "yes"),
        )

        return cls(
            upstream=upstream,
            worker=worker,
            notifications=notifications,
            email=email,
            database=database,
        )

    def validate(self) -> List[str]:
        """
        Validate configuration.

        Returns:
            List of validation errors (empty when valid)
        """
        errors = []

        if self.worker.inter_map_delay_seconds < MIN_INTER_MAP_DELAY_SECONDS:
            errors.append(
                f"inter_map_delay_seconds must be >= {MIN_INTER_MAP_DELAY_SECONDS}"
            )
        if self.worker.retry_attempts < 1:
            errors.append("retry_attempts must be at least 1")
        if self.worker.max_pages < 1 or self.worker.max_maps < 1:
            errors.append("max_pages and max_maps must be positive")
        required = self.worker.worst_case_sleep_seconds + JOB_TIMEOUT_HEADROOM_SECONDS
        if self.worker.job_timeout_seconds <= required:
            errors.append(
                f"job_timeout_seconds must exceed {required:g} "
                f"(retry cooldown + max_maps pacing + {JOB_TIMEOUT_HEADROOM_SECONDS}s)"
            )
        if not 1 <= self.notifications.position_batch_size <= UPSTREAM_MAX_BATCH_SIZE:
            errors.append(f"position_batch_size must be in 1..{UPSTREAM_MAX_BATCH_SIZE}")
        if not 1 <= self.notifications.name_batch_size <= UPSTREAM_MAX_BATCH_SIZE:
            errors.append(f"name_batch_size must be in 1..{UPSTREAM_MAX_BATCH_SIZE}")
        if not self.upstream.basic_authorization:
            errors.append("AUTHORIZATION is required for the leaderboard API")
        if not (self.upstream.oauth_client_id and self.upstream.oauth_client_secret):
            errors.append("OCLIENT_ID and OCLIENT_SECRET are required for the OAuth2 API")

        return errors

    def raise_if_invalid(self) -> None:
        """Raise ConfigurationError listing every problem."""
        errors = self.validate()
        if errors:
            raise ConfigurationError(
                "Invalid configuration: " + "; ".join(errors),
                context={"errors": errors},
            )


def _env_int(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(
            f"{key} must be an integer", config_key=key, actual_value=raw, cause=e
        ) from e


def _env_float(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(
            f"{key} must be a number", config_key=key, actual_value=raw, cause=e
        ) from e


__all__ = [
    "UpstreamConfig",
    "WorkerConfig",
    "NotificationConfig",
    "EmailConfig",
    "DatabaseConfig",
    "AppConfig",
]
