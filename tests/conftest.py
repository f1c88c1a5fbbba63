"""
Shared test fixtures.

- In-memory SQLite database with the full schema
- Frozen MockClock
- httpx.MockTransport-backed upstream client
"""

from datetime import datetime, timezone
from typing import Callable, List

import httpx
import pytest

from core.clock import MockClock
from core.config import DatabaseConfig
from storage.database import Database
from upstream.client import UpstreamApiClient


FIXED_NOW = datetime(2026, 3, 15, 12, 0, 0, tzinfo=timezone.utc)


class StaticTokenProvider:
    """TokenProvider stand-in: 'stale' first, 'fresh' after a forced refresh."""

    def __init__(self):
        self.calls: List[bool] = []

    async def get_access_token(self, force_refresh: bool = False) -> str:
        self.calls.append(force_refresh)
        return "fresh" if force_refresh else "stale"

    def authorization_header(self, token: str) -> str:
        return f"Bearer {token}"


@pytest.fixture
def clock():
    """Clock frozen at FIXED_NOW."""
    return MockClock(FIXED_NOW)


@pytest.fixture
def database():
    """Fresh in-memory database per test."""
    db = Database(DatabaseConfig(url="sqlite://"))
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def session(database):
    """Session committed at teardown."""
    with database.transaction() as s:
        yield s


@pytest.fixture
def token_provider():
    return StaticTokenProvider()


@pytest.fixture
def make_client():
    """Build an UpstreamApiClient whose HTTP layer is a handler function."""
    clients = []

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> UpstreamApiClient:
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(http)
        return UpstreamApiClient(http, user_agent="tests")

    return factory
