"""
Upstream - Leaderboard Endpoints.

============================================================
ENDPOINTS
============================================================
- get_top: full top leaderboard of one map (live services,
  accurate mode and on-demand search)
- get_positions: batched ranking snapshot for up to 50 maps
  (OAuth API, driver checks and inaccurate mode)

============================================================
"""

import logging
from typing import Dict, List, Sequence

from core.constants import UPSTREAM_MAX_BATCH_SIZE
from core.exceptions import UpstreamDataError
from upstream.client import UpstreamApiClient
from upstream.token_store import TokenProvider
from upstream.types import LeaderboardRecord, MapSnapshot, PositionEntry


class LeaderboardApi:
    """Typed access to the leaderboard endpoints."""

    def __init__(
        self,
        client: UpstreamApiClient,
        live_tokens: TokenProvider,
        oauth_tokens: TokenProvider,
        live_base_url: str,
        position_url: str,
    ) -> None:
        self._client = client
        self._live_tokens = live_tokens
        self._oauth_tokens = oauth_tokens
        self._live_base_url = live_base_url.rstrip("/")
        self._position_url = position_url
        self._logger = logging.getLogger("upstream.leaderboards")

    async def get_top(self, map_uid: str, length: int = 100) -> List[LeaderboardRecord]:
        """
        Fetch the world top of one map.

        Raises:
            UpstreamError subclasses on failure
        """
        url = f"{self._live_base_url}/api/token/leaderboard/group/Personal_Best/map/{map_uid}/top"
        body = await self._client.get(
            url,
            provider=self._live_tokens,
            params={"onlyWorld": "true", "length": length},
        )

        tops = body.get("tops") if isinstance(body, dict) else None
        if not isinstance(tops, list):
            raise UpstreamDataError("Leaderboard response without 'tops'", url=url)

        records = []
        for group in tops:
            for raw in group.get("top") or []:
                records.append(LeaderboardRecord.from_api(raw))
        return records

    async def get_positions(self, map_uids: Sequence[str]) -> Dict[str, MapSnapshot]:
        """
        Fetch ranking snapshots for a batch of maps.

        Maps missing from the response are absent from the result.

        Raises:
            ValueError: more than 50 map ids
            UpstreamError subclasses on failure
        """
        if len(map_uids) > UPSTREAM_MAX_BATCH_SIZE:
            raise ValueError(f"At most {UPSTREAM_MAX_BATCH_SIZE} map ids per position call")
        if not map_uids:
            return {}

        params = [("mapUid[]", uid) for uid in map_uids]
        body = await self._client.get(self._position_url, provider=self._oauth_tokens, params=params)
        if not isinstance(body, dict):
            raise UpstreamDataError("Position response is not an object", url=self._position_url)

        snapshots = {}
        for uid in map_uids:
            raw_entries = body.get(uid)
            if not isinstance(raw_entries, list):
                self._logger.warning(f"No position data for map {uid}")
                continue
            snapshots[uid] = MapSnapshot(
                map_uid=uid,
                entries=[PositionEntry.from_api(raw) for raw in raw_entries],
            )
        return snapshots
