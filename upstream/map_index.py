"""
Upstream - Map Index Client.

============================================================
RESPONSIBILITY
============================================================
Lists a mapper's published maps from the public map index.

The index pages with an `after=<last MapId>` cursor and a
`More` flag. Pagination stops on:
- More = false
- an empty page
- a cursor that was already requested
- the page cap or the map cap

============================================================
"""

import logging
from typing import AsyncIterator, List, Optional, Set

from upstream.client import UpstreamApiClient
from upstream.types import MapInfo


MAP_INDEX_FIELDS = "Name,MapId,MapUid,Authors"


class MapIndexClient:
    """Paginated reader of the public map index."""

    def __init__(
        self,
        client: UpstreamApiClient,
        base_url: str,
        max_pages: int = 100,
        max_maps: int = 2000,
    ) -> None:
        self._client = client
        self._base_url = base_url
        self._max_pages = max_pages
        self._max_maps = max_maps
        self._logger = logging.getLogger("upstream.map_index")

    async def iter_maps(self, author: str) -> AsyncIterator[MapInfo]:
        """Yield the author's maps page by page."""
        cursor: Optional[int] = None
        seen_cursors: Set[int] = set()
        pages = 0
        yielded = 0

        while True:
            params = {"author": author, "fields": MAP_INDEX_FIELDS}
            if cursor is not None:
                params["after"] = cursor

            body = await self._client.get(self._base_url, params=params)
            pages += 1

            results = (body or {}).get("Results") or []
            if not results:
                return

            for raw in results:
                yield MapInfo.from_index(raw)
                yielded += 1
                if yielded >= self._max_maps:
                    self._logger.warning(f"Map cap {self._max_maps} reached for {author}")
                    return

            if not body.get("More"):
                return

            if cursor is not None:
                seen_cursors.add(cursor)
            cursor = int(results[-1]["MapId"])
            if cursor in seen_cursors:
                self._logger.warning(f"Repeated cursor {cursor} for {author}, stopping")
                return

            if pages >= self._max_pages:
                self._logger.warning(f"Page cap {self._max_pages} reached for {author}")
                return

    async def list_maps(self, author: str) -> List[MapInfo]:
        """All maps of an author, de-duplicated by uid, in index order."""
        maps = []
        seen: Set[str] = set()
        async for info in self.iter_maps(author):
            if info.map_uid in seen:
                continue
            seen.add(info.map_uid)
            maps.append(info)
        self._logger.info(f"Found {len(maps)} maps for {author}")
        return maps
