"""
Upstream - Token Store.

============================================================
RESPONSIBILITY
============================================================
Credential lifecycle for the two upstream accounts.

- Reuses a cached access credential while it is younger than
  the freshness window (24h)
- Otherwise refreshes with the cached refresh credential
- Falls back to a full login when refresh fails
- Persists the new pair with its issue timestamp

============================================================
CONCURRENCY
============================================================
One asyncio.Lock per provider avoids a refresh stampede inside
a process. Across processes the cache is last-writer-wins;
refreshing twice is harmless.

============================================================
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any, Optional

from core.clock import ClockProtocol, SystemClock, ensure_utc
from core.config import UpstreamConfig
from core.constants import (
    PROVIDER_LIVE,
    PROVIDER_OAUTH,
    TOKEN_TYPE_ACCESS,
    TOKEN_TYPE_REFRESH,
)
from core.exceptions import UpstreamAuthError, UpstreamError
from storage.database import Database
from storage.models.tokens import UpstreamToken
from storage.repositories.tokens import TokenRepository
from upstream.client import UpstreamApiClient
from upstream.types import TokenPair


# =============================================================
# CACHE
# =============================================================

class TokenCache:
    """Database-backed credential cache."""

    def __init__(self, database: Database, clock: Optional[ClockProtocol] = None) -> None:
        self._database = database
        self._clock = clock or SystemClock()

    def load(self, provider: str, token_type: str) -> Optional[UpstreamToken]:
        with self._database.transaction() as session:
            return TokenRepository(session, self._clock).get(provider, token_type)

    def store(
        self,
        provider: str,
        pair: TokenPair,
        access_ttl_seconds: int,
        refresh_ttl_seconds: int,
    ) -> None:
        now = self._clock.now()
        with self._database.transaction() as session:
            repo = TokenRepository(session, self._clock)
            repo.save(
                provider, TOKEN_TYPE_ACCESS, pair.access_token,
                expires_at=now + timedelta(seconds=access_ttl_seconds),
                created_at=now,
            )
            if pair.refresh_token:
                repo.save(
                    provider, TOKEN_TYPE_REFRESH, pair.refresh_token,
                    expires_at=now + timedelta(seconds=refresh_ttl_seconds),
                    created_at=now,
                )


# =============================================================
# PROVIDERS
# =============================================================

class TokenProvider(ABC):
    """
    Base credential provider.

    Subclasses implement the login and refresh calls and the
    Authorization header scheme.
    """

    provider_name: str = ""

    def __init__(
        self,
        client: UpstreamApiClient,
        cache: TokenCache,
        config: UpstreamConfig,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        self._client = client
        self._cache = cache
        self._config = config
        self._clock = clock or SystemClock()
        self._lock = asyncio.Lock()
        self._logger = logging.getLogger(f"upstream.tokens.{self.provider_name}")

    async def get_access_token(self, force_refresh: bool = False) -> str:
        """
        Return a usable access credential.

        Args:
            force_refresh: skip the cached access credential
        """
        async with self._lock:
            now = self._clock.now()
            freshness = timedelta(seconds=self._config.token_freshness_seconds)

            if not force_refresh:
                cached = self._cache.load(self.provider_name, TOKEN_TYPE_ACCESS)
                if cached is not None and now - ensure_utc(cached.created_at) < freshness:
                    return cached.token

            pair = None
            cached_refresh = self._cache.load(self.provider_name, TOKEN_TYPE_REFRESH)
            if cached_refresh is not None and ensure_utc(cached_refresh.expires_at) > now:
                try:
                    pair = await self._refresh(cached_refresh.token)
                    if not pair.refresh_token:
                        pair = TokenPair(pair.access_token, cached_refresh.token)
                    self._logger.info("Credential refreshed")
                except UpstreamError as e:
                    self._logger.warning(f"Refresh failed, performing full login: {e}")
                    pair = None

            if pair is None:
                pair = await self._login()
                self._logger.info("Full login successful")

            self._cache.store(
                self.provider_name,
                pair,
                access_ttl_seconds=self._config.token_freshness_seconds,
                refresh_ttl_seconds=self._config.refresh_token_lifetime_seconds,
            )
            return pair.access_token

    @abstractmethod
    def authorization_header(self, token: str) -> str:
        """Build the Authorization header value for a token."""
        pass

    @abstractmethod
    async def _login(self) -> TokenPair:
        pass

    @abstractmethod
    async def _refresh(self, refresh_token: str) -> TokenPair:
        pass


class LiveServicesTokenProvider(TokenProvider):
    """Game live-services account (leaderboards)."""

    provider_name = PROVIDER_LIVE

    def authorization_header(self, token: str) -> str:
        return f"nadeo_v1 t={token}"

    async def _login(self) -> TokenPair:
        body = await self._client.request(
            "POST",
            self._config.auth_url,
            json={"audience": "NadeoLiveServices"},
            headers={"Authorization": f"Basic {self._config.basic_authorization}"},
        )
        return self._parse(body)

    async def _refresh(self, refresh_token: str) -> TokenPair:
        body = await self._client.request(
            "POST",
            self._config.refresh_url,
            json={},
            headers={"Authorization": f"nadeo_v1 t={refresh_token}"},
        )
        return self._parse(body)

    def _parse(self, body: Any) -> TokenPair:
        if not isinstance(body, dict) or not body.get("accessToken"):
            raise UpstreamAuthError("Missing tokens in response", url=self._config.auth_url)
        return TokenPair(body["accessToken"], body.get("refreshToken"))


class OAuthTokenProvider(TokenProvider):
    """Public OAuth2 API (display names)."""

    provider_name = PROVIDER_OAUTH

    def authorization_header(self, token: str) -> str:
        return f"Bearer {token}"

    async def _login(self) -> TokenPair:
        body = await self._client.request(
            "POST",
            self._config.oauth_token_url,
            data={
                "grant_type": "client_credentials",
                "client_id": self._config.oauth_client_id,
                "client_secret": self._config.oauth_client_secret,
            },
        )
        return self._parse(body)

    async def _refresh(self, refresh_token: str) -> TokenPair:
        body = await self._client.request(
            "POST",
            self._config.oauth_token_url,
            data={
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self._config.oauth_client_id,
                "client_secret": self._config.oauth_client_secret,
            },
        )
        return self._parse(body)

    def _parse(self, body: Any) -> TokenPair:
        if not isinstance(body, dict) or not body.get("access_token"):
            raise UpstreamAuthError("Missing access_token in response", url=self._config.oauth_token_url)
        return TokenPair(body["access_token"], body.get("refresh_token"))


__all__ = [
    "TokenCache",
    "TokenProvider",
    "LiveServicesTokenProvider",
    "OAuthTokenProvider",
]
