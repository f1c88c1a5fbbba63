"""
Upstream - API Client.

============================================================
RESPONSIBILITY
============================================================
Single-request wrapper around the leaderboard / identity
services.

- Attaches credentials from a TokenProvider
- Forces exactly one credential refresh on 401, then retries
- Maps transport and HTTP failures onto the upstream
  exception hierarchy

============================================================
RATE DISCIPLINE
============================================================
The partner contract (2 requests/second per account) is NOT
enforced here. Callers serialize their calls (single consumer
per queue) and sleep a fixed delay between calls.

============================================================
"""

import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

import httpx

from core.exceptions import (
    UpstreamAuthError,
    UpstreamDataError,
    UpstreamError,
    UpstreamTransientError,
)

if TYPE_CHECKING:
    from upstream.token_store import TokenProvider


class UpstreamApiClient:
    """
    Authenticated HTTP client for upstream services.

    Usage:
        client = UpstreamApiClient(httpx.AsyncClient(timeout=30), user_agent)
        data = await client.request("GET", url, provider=live_tokens)
    """

    def __init__(self, http: httpx.AsyncClient, user_agent: str = "") -> None:
        self._http = http
        self._user_agent = user_agent
        self._logger = logging.getLogger("upstream.client")

    async def request(
        self,
        method: str,
        url: str,
        provider: Optional["TokenProvider"] = None,
        params: Any = None,
        json: Any = None,
        data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        Perform one request and return the decoded JSON body.

        Args:
            method: HTTP method
            url: Absolute URL
            provider: Credential source; None for public endpoints
            params: Query parameters (dict or list of pairs)
            json: JSON body
            data: Form body
            headers: Extra headers

        Raises:
            UpstreamAuthError: credential still rejected after one refresh
            UpstreamTransientError: network failure, timeout, 429 or 5xx
            UpstreamDataError: body is not valid JSON
            UpstreamError: any other 4xx
        """
        if provider is None:
            return await self._send(method, url, params, json, data, headers)

        token = await provider.get_access_token()
        try:
            return await self._send(
                method, url, params, json, data,
                self._with_auth(headers, provider.authorization_header(token)),
            )
        except UpstreamAuthError as e:
            if e.status_code != 401:
                raise
            self._logger.info(f"401 from {url}, forcing credential refresh")

        token = await provider.get_access_token(force_refresh=True)
        return await self._send(
            method, url, params, json, data,
            self._with_auth(headers, provider.authorization_header(token)),
        )

    async def get(self, url: str, provider: Optional["TokenProvider"] = None, params: Any = None) -> Any:
        return await self.request("GET", url, provider=provider, params=params)

    async def close(self) -> None:
        await self._http.aclose()

    # =========================================================
    # INTERNALS
    # =========================================================

    def _with_auth(self, headers: Optional[Dict[str, str]], authorization: str) -> Dict[str, str]:
        merged = dict(headers or {})
        merged["Authorization"] = authorization
        return merged

    async def _send(
        self,
        method: str,
        url: str,
        params: Any,
        json: Any,
        data: Optional[Dict[str, Any]],
        headers: Optional[Dict[str, str]],
    ) -> Any:
        request_headers = {"User-Agent": self._user_agent} if self._user_agent else {}
        request_headers.update(headers or {})

        try:
            response = await self._http.request(
                method, url, params=params, json=json, data=data, headers=request_headers,
            )
        except httpx.TimeoutException as e:
            raise UpstreamTransientError(f"Request timeout: {e}", url=url, cause=e) from e
        except httpx.RequestError as e:
            raise UpstreamTransientError(f"Request error: {e}", url=url, cause=e) from e

        status = response.status_code
        if status >= 400:
            message = f"HTTP {status}: {response.text[:200]}"
            self._logger.warning(f"{method} {url} -> {status}")
            if status in (401, 403):
                raise UpstreamAuthError(message, url=url, status_code=status)
            if status == 429 or status >= 500:
                raise UpstreamTransientError(message, url=url, status_code=status)
            raise UpstreamError(message, url=url, status_code=status)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamDataError(
                f"Undecodable response body: {e}", url=url, status_code=status, cause=e
            ) from e


__all__ = ["UpstreamApiClient"]
