"""
Tests for the credential cache and providers.

Covers:
- 24h freshness window
- Refresh before full login, keeping the old refresh token
- Login fallback when refresh fails
- OAuth2 grants
"""

from urllib.parse import parse_qs

import httpx
import pytest

from core.config import UpstreamConfig
from core.constants import PROVIDER_LIVE, PROVIDER_OAUTH, TOKEN_TYPE_ACCESS, TOKEN_TYPE_REFRESH
from core.exceptions import UpstreamAuthError
from upstream.token_store import LiveServicesTokenProvider, OAuthTokenProvider, TokenCache
from upstream.types import TokenPair


CONFIG = UpstreamConfig(
    auth_url="https://core.example.test/login",
    refresh_url="https://core.example.test/refresh",
    basic_authorization="dXNlcjpwYXNz",
    oauth_token_url="https://api.example.test/api/access_token",
    oauth_client_id="client",
    oauth_client_secret="secret",
)


# =============================================================
# FIXTURES
# =============================================================

class LiveServer:
    """Fake identity service for the live-services account."""

    def __init__(self):
        self.logins = 0
        self.refreshes = []
        self.refresh_status = 200
        self.refresh_body = {"accessToken": "access-2"}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if str(request.url) == CONFIG.auth_url:
            self.logins += 1
            assert request.headers["Authorization"] == f"Basic {CONFIG.basic_authorization}"
            return httpx.Response(
                200,
                json={"accessToken": f"access-login-{self.logins}", "refreshToken": "refresh-1"},
            )
        if str(request.url) == CONFIG.refresh_url:
            self.refreshes.append(request.headers["Authorization"])
            return httpx.Response(self.refresh_status, json=self.refresh_body)
        return httpx.Response(404)


@pytest.fixture
def live_server():
    return LiveServer()


@pytest.fixture
def cache(database, clock):
    return TokenCache(database, clock)


@pytest.fixture
def live_provider(make_client, live_server, cache, clock):
    return LiveServicesTokenProvider(make_client(live_server), cache, CONFIG, clock)


# =============================================================
# TEST: Live services provider
# =============================================================

class TestLiveServicesProvider:
    """Freshness, refresh and login fallback."""

    @pytest.mark.asyncio
    async def test_login_when_cache_empty(self, live_provider, live_server, cache):
        token = await live_provider.get_access_token()

        assert token == "access-login-1"
        assert live_server.logins == 1
        assert cache.load(PROVIDER_LIVE, TOKEN_TYPE_REFRESH).token == "refresh-1"

    @pytest.mark.asyncio
    async def test_fresh_token_is_reused(self, live_provider, live_server, clock):
        await live_provider.get_access_token()
        clock.advance(hours=23)

        token = await live_provider.get_access_token()

        assert token == "access-login-1"
        assert live_server.logins == 1
        assert live_server.refreshes == []

    @pytest.mark.asyncio
    async def test_stale_token_is_refreshed(self, live_provider, live_server, cache, clock):
        await live_provider.get_access_token()
        clock.advance(hours=25)

        token = await live_provider.get_access_token()

        assert token == "access-2"
        assert live_server.refreshes == ["nadeo_v1 t=refresh-1"]
        assert live_server.logins == 1
        # No refresh token in the response: the old one stays usable
        assert cache.load(PROVIDER_LIVE, TOKEN_TYPE_REFRESH).token == "refresh-1"
        assert cache.load(PROVIDER_LIVE, TOKEN_TYPE_ACCESS).token == "access-2"

    @pytest.mark.asyncio
    async def test_failed_refresh_falls_back_to_login(self, live_provider, live_server, clock):
        await live_provider.get_access_token()
        clock.advance(hours=25)
        live_server.refresh_status = 401

        token = await live_provider.get_access_token()

        assert token == "access-login-2"
        assert live_server.logins == 2

    @pytest.mark.asyncio
    async def test_force_refresh_skips_fresh_cache(self, live_provider, live_server):
        await live_provider.get_access_token()

        token = await live_provider.get_access_token(force_refresh=True)

        assert token == "access-2"
        assert len(live_server.refreshes) == 1

    @pytest.mark.asyncio
    async def test_expired_refresh_token_goes_straight_to_login(
        self, live_provider, live_server, clock
    ):
        await live_provider.get_access_token()
        clock.advance(days=31)

        await live_provider.get_access_token()

        assert live_server.refreshes == []
        assert live_server.logins == 2

    @pytest.mark.asyncio
    async def test_login_without_tokens_raises(self, make_client, cache, clock):
        client = make_client(lambda request: httpx.Response(200, json={}))
        provider = LiveServicesTokenProvider(client, cache, CONFIG, clock)

        with pytest.raises(UpstreamAuthError):
            await provider.get_access_token()

    def test_header_scheme(self, live_provider):
        assert live_provider.authorization_header("abc") == "nadeo_v1 t=abc"


# =============================================================
# TEST: OAuth2 provider
# =============================================================

class TestOAuthProvider:
    """client_credentials login and refresh_token grant."""

    @pytest.mark.asyncio
    async def test_client_credentials_grant(self, make_client, cache, clock):
        forms = []

        def handler(request):
            forms.append(parse_qs(request.content.decode()))
            return httpx.Response(200, json={"access_token": "oauth-1", "expires_in": 3600})

        provider = OAuthTokenProvider(make_client(handler), cache, CONFIG, clock)
        token = await provider.get_access_token()

        assert token == "oauth-1"
        assert forms[0]["grant_type"] == ["client_credentials"]
        assert forms[0]["client_id"] == ["client"]
        # client_credentials issues no refresh token
        assert cache.load(PROVIDER_OAUTH, TOKEN_TYPE_REFRESH) is None

    @pytest.mark.asyncio
    async def test_refresh_token_grant(self, make_client, cache, clock):
        cache.store(
            PROVIDER_OAUTH,
            TokenPair("old-access", "oauth-refresh"),
            access_ttl_seconds=CONFIG.token_freshness_seconds,
            refresh_ttl_seconds=CONFIG.refresh_token_lifetime_seconds,
        )
        clock.advance(hours=25)
        forms = []

        def handler(request):
            forms.append(parse_qs(request.content.decode()))
            return httpx.Response(200, json={"access_token": "oauth-2", "refresh_token": "r-2"})

        provider = OAuthTokenProvider(make_client(handler), cache, CONFIG, clock)
        token = await provider.get_access_token()

        assert token == "oauth-2"
        assert forms[0]["grant_type"] == ["refresh_token"]
        assert forms[0]["refresh_token"] == ["oauth-refresh"]
        assert cache.load(PROVIDER_OAUTH, TOKEN_TYPE_REFRESH).token == "r-2"

    def test_header_scheme(self, make_client, cache, clock):
        provider = OAuthTokenProvider(make_client(lambda r: httpx.Response(200)), cache, CONFIG, clock)
        assert provider.authorization_header("abc") == "Bearer abc"
