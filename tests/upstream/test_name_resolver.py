"""
Tests for the player-name resolver.

Covers:
- Chunks of at most 50 ids
- Per-chunk failure tolerance
- Coalescing of concurrent lookups
"""

import asyncio

import httpx
import pytest

from upstream.name_resolver import PlayerNameResolver


BASE_URL = "https://api.example.test"


class NameService:
    def __init__(self, failing_id=None):
        self.failing_id = failing_id
        self.batches = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        ids = request.url.params.get_list("accountId[]")
        self.batches.append(ids)
        if self.failing_id in ids:
            return httpx.Response(503)
        return httpx.Response(200, json={aid: f"name-{aid}" for aid in ids})


class TestPlayerNameResolver:
    """Batched display-name lookups."""

    @pytest.mark.asyncio
    async def test_chunks_of_fifty(self, make_client, token_provider):
        service = NameService()
        resolver = PlayerNameResolver(make_client(service), token_provider, BASE_URL)
        ids = [f"id-{i}" for i in range(120)]

        names = await resolver.resolve(ids)

        assert [len(batch) for batch in service.batches] == [50, 50, 20]
        assert len(names) == 120
        assert names["id-7"] == "name-id-7"

    @pytest.mark.asyncio
    async def test_duplicates_requested_once(self, make_client, token_provider):
        service = NameService()
        resolver = PlayerNameResolver(make_client(service), token_provider, BASE_URL)

        names = await resolver.resolve(["a", "b", "a", "", "b"])

        assert service.batches == [["a", "b"]]
        assert names == {"a": "name-a", "b": "name-b"}

    @pytest.mark.asyncio
    async def test_failed_chunk_leaves_ids_unresolved(self, make_client, token_provider):
        service = NameService(failing_id="id-60")
        resolver = PlayerNameResolver(make_client(service), token_provider, BASE_URL)
        ids = [f"id-{i}" for i in range(120)]

        names = await resolver.resolve(ids)

        assert len(names) == 70
        assert "id-60" not in names
        assert "id-0" in names
        assert "id-119" in names

    @pytest.mark.asyncio
    async def test_concurrent_lookups_share_in_flight_request(self, make_client, token_provider):
        service = NameService()
        resolver = PlayerNameResolver(make_client(service), token_provider, BASE_URL)

        first, second = await asyncio.gather(
            resolver.resolve(["a", "b"]),
            resolver.resolve(["b", "c"]),
        )

        requested = [aid for batch in service.batches for aid in batch]
        assert requested.count("b") == 1
        assert first == {"a": "name-a", "b": "name-b"}
        assert second == {"b": "name-b", "c": "name-c"}

    @pytest.mark.asyncio
    async def test_empty_input_makes_no_request(self, make_client, token_provider):
        service = NameService()
        resolver = PlayerNameResolver(make_client(service), token_provider, BASE_URL)

        assert await resolver.resolve([]) == {}
        assert service.batches == []
