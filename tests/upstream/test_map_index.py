"""
Tests for map index pagination.

Covers:
- Pages [A, B, C] ending with More=false are ingested exactly once
- Repeated cursors terminate
- Page and map caps
"""

import httpx
import pytest

from upstream.map_index import MAP_INDEX_FIELDS, MapIndexClient


INDEX_URL = "https://maps.example.test/api/maps"


def _map(map_id: int) -> dict:
    return {"MapId": map_id, "MapUid": f"uid-{map_id}", "Name": f"Map {map_id}", "Authors": []}


class PagedIndex:
    """Serves pages keyed by the 'after' cursor."""

    def __init__(self, pages):
        self.pages = pages
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request.url.params)
        after = request.url.params.get("after")
        return httpx.Response(200, json=self.pages[after])


# =============================================================
# TEST: Pagination termination
# =============================================================

class TestPagination:
    """Cursor-following and termination."""

    @pytest.mark.asyncio
    async def test_three_pages_then_stop(self, make_client):
        index = PagedIndex({
            None: {"Results": [_map(1)], "More": True},
            "1": {"Results": [_map(2)], "More": True},
            "2": {"Results": [_map(3)], "More": False},
        })
        client = MapIndexClient(make_client(index), INDEX_URL)

        maps = await client.list_maps("mapper")

        assert [m.name for m in maps] == ["Map 1", "Map 2", "Map 3"]
        assert len(index.requests) == 3
        assert index.requests[0]["author"] == "mapper"
        assert index.requests[0]["fields"] == MAP_INDEX_FIELDS

    @pytest.mark.asyncio
    async def test_repeated_cursor_stops(self, make_client):
        # Index keeps answering with the same page and More=true
        index = PagedIndex({
            None: {"Results": [_map(1)], "More": True},
            "1": {"Results": [_map(1)], "More": True},
        })
        client = MapIndexClient(make_client(index), INDEX_URL)

        maps = await client.list_maps("mapper")

        assert [m.map_uid for m in maps] == ["uid-1"]
        assert len(index.requests) == 2

    @pytest.mark.asyncio
    async def test_empty_page_stops(self, make_client):
        index = PagedIndex({None: {"Results": [], "More": True}})
        client = MapIndexClient(make_client(index), INDEX_URL)

        assert await client.list_maps("nobody") == []
        assert len(index.requests) == 1

    @pytest.mark.asyncio
    async def test_page_cap(self, make_client):
        def handler(request):
            after = int(request.url.params.get("after", 0))
            return httpx.Response(200, json={"Results": [_map(after + 1)], "More": True})

        calls = []

        def counting(request):
            calls.append(request)
            return handler(request)

        client = MapIndexClient(make_client(counting), INDEX_URL, max_pages=4)
        maps = await client.list_maps("prolific")

        assert len(calls) == 4
        assert len(maps) == 4

    @pytest.mark.asyncio
    async def test_map_cap(self, make_client):
        index = PagedIndex({
            None: {"Results": [_map(1), _map(2)], "More": True},
            "2": {"Results": [_map(3), _map(4)], "More": True},
        })
        client = MapIndexClient(make_client(index), INDEX_URL, max_maps=3)

        maps = await client.list_maps("mapper")

        assert [m.map_id for m in maps] == [1, 2, 3]
