"""
Upstream - Player-Name Resolver.

============================================================
RESPONSIBILITY
============================================================
Translates account ids into display names.

- De-duplicates ids and chunks them by 50 (upstream limit)
- Concurrent callers asking for the same id share one
  in-flight lookup
- A failed chunk leaves its ids unresolved; other chunks
  continue

============================================================
"""

import asyncio
import logging
from typing import Dict, Iterable, List

from core.constants import UPSTREAM_MAX_BATCH_SIZE
from core.exceptions import UpstreamError
from upstream.client import UpstreamApiClient
from upstream.token_store import TokenProvider


class PlayerNameResolver:
    """Batched, coalescing account-id to display-name lookup."""

    def __init__(
        self,
        client: UpstreamApiClient,
        tokens: TokenProvider,
        base_url: str,
        batch_size: int = UPSTREAM_MAX_BATCH_SIZE,
    ) -> None:
        self._client = client
        self._tokens = tokens
        self._url = f"{base_url.rstrip('/')}/api/display-names"
        self._batch_size = min(batch_size, UPSTREAM_MAX_BATCH_SIZE)
        self._in_flight: Dict[str, "asyncio.Future[Dict[str, str]]"] = {}
        self._logger = logging.getLogger("upstream.name_resolver")

    async def resolve(self, account_ids: Iterable[str]) -> Dict[str, str]:
        """
        Resolve ids to names.

        Returns:
            Mapping of resolved ids; unresolved ids are missing
        """
        unique = list(dict.fromkeys(a for a in account_ids if a))

        waiting = {aid: self._in_flight[aid] for aid in unique if aid in self._in_flight}
        to_fetch = [aid for aid in unique if aid not in waiting]

        own: List["asyncio.Future[Dict[str, str]]"] = []
        for start in range(0, len(to_fetch), self._batch_size):
            chunk = to_fetch[start:start + self._batch_size]
            future = asyncio.ensure_future(self._fetch_chunk(chunk))
            for aid in chunk:
                self._in_flight[aid] = future
            future.add_done_callback(lambda _f, ids=chunk: self._release(ids, _f))
            own.append(future)

        names: Dict[str, str] = {}
        for future in set(own) | set(waiting.values()):
            result = await future
            names.update({aid: name for aid, name in result.items() if aid in unique})
        return names

    def _release(self, ids: List[str], future: "asyncio.Future[Dict[str, str]]") -> None:
        for aid in ids:
            if self._in_flight.get(aid) is future:
                del self._in_flight[aid]

    async def _fetch_chunk(self, chunk: List[str]) -> Dict[str, str]:
        params = [("accountId[]", aid) for aid in chunk]
        try:
            body = await self._client.get(self._url, provider=self._tokens, params=params)
        except UpstreamError as e:
            self._logger.warning(f"Display-name lookup failed for {len(chunk)} ids: {e}")
            return {}

        if not isinstance(body, dict):
            self._logger.warning("Display-name response is not an object")
            return {}
        return {str(k): str(v) for k, v in body.items() if v}
