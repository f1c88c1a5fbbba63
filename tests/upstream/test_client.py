"""
Tests for the upstream API client.

Covers:
- One forced refresh on 401, then retry
- HTTP status to exception mapping
- Body decoding
"""

import httpx
import pytest

from core.exceptions import (
    UpstreamAuthError,
    UpstreamDataError,
    UpstreamError,
    UpstreamTransientError,
)


URL = "https://live.example.test/api/thing"


# =============================================================
# TEST: Authorization retry
# =============================================================

class TestAuthorizationRetry:
    """Exactly one refresh-and-retry on 401."""

    @pytest.mark.asyncio
    async def test_refreshes_once_on_401(self, make_client, token_provider):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers["Authorization"])
            if request.headers["Authorization"] == "Bearer stale":
                return httpx.Response(401, text="expired")
            return httpx.Response(200, json={"ok": True})

        client = make_client(handler)
        body = await client.get(URL, provider=token_provider)

        assert body == {"ok": True}
        assert seen == ["Bearer stale", "Bearer fresh"]
        assert token_provider.calls == [False, True]

    @pytest.mark.asyncio
    async def test_second_401_is_surfaced(self, make_client, token_provider):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(401)

        client = make_client(handler)
        with pytest.raises(UpstreamAuthError) as exc_info:
            await client.get(URL, provider=token_provider)

        assert exc_info.value.status_code == 401
        assert len(calls) == 2
        assert token_provider.calls == [False, True]

    @pytest.mark.asyncio
    async def test_403_does_not_refresh(self, make_client, token_provider):
        client = make_client(lambda request: httpx.Response(403))

        with pytest.raises(UpstreamAuthError):
            await client.get(URL, provider=token_provider)

        assert token_provider.calls == [False]

    @pytest.mark.asyncio
    async def test_public_request_has_no_authorization(self, make_client):
        headers = {}

        def handler(request):
            headers.update(request.headers)
            return httpx.Response(200, json=[])

        client = make_client(handler)
        await client.get(URL, params={"author": "someone"})

        assert "authorization" not in headers
        assert headers["user-agent"] == "tests"


# =============================================================
# TEST: Error mapping
# =============================================================

class TestErrorMapping:
    """HTTP and transport failures map onto the exception hierarchy."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [429, 500, 502, 503])
    async def test_transient_statuses(self, make_client, status):
        client = make_client(lambda request: httpx.Response(status))

        with pytest.raises(UpstreamTransientError) as exc_info:
            await client.get(URL)

        assert exc_info.value.is_recoverable
        assert exc_info.value.status_code == status

    @pytest.mark.asyncio
    async def test_other_4xx_is_not_recoverable(self, make_client):
        client = make_client(lambda request: httpx.Response(404, text="nope"))

        with pytest.raises(UpstreamError) as exc_info:
            await client.get(URL)

        assert not isinstance(exc_info.value, UpstreamTransientError)
        assert not exc_info.value.is_recoverable

    @pytest.mark.asyncio
    async def test_transport_error_is_transient(self, make_client):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)
        with pytest.raises(UpstreamTransientError):
            await client.get(URL)

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self, make_client):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        client = make_client(handler)
        with pytest.raises(UpstreamTransientError):
            await client.get(URL)

    @pytest.mark.asyncio
    async def test_undecodable_body(self, make_client):
        client = make_client(lambda request: httpx.Response(200, text="<html>"))

        with pytest.raises(UpstreamDataError):
            await client.get(URL)

    @pytest.mark.asyncio
    async def test_empty_body_is_none(self, make_client):
        client = make_client(lambda request: httpx.Response(204))

        assert await client.get(URL) is None
