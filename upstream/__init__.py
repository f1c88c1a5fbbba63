"""
Upstream Package.

Clients for the external leaderboard / identity services and
the public map index.

Modules:
- client: authenticated single-request wrapper
- token_store: credential cache and providers
- leaderboards: top leaderboard and batched positions
- map_index: paginated map listing
- name_resolver: account id to display name
"""

from .client import UpstreamApiClient
from .leaderboards import LeaderboardApi
from .map_index import MapIndexClient
from .name_resolver import PlayerNameResolver
from .token_store import LiveServicesTokenProvider, OAuthTokenProvider, TokenCache, TokenProvider
from .types import LeaderboardRecord, MapInfo, MapSnapshot, PositionEntry, TokenPair

__all__ = [
    "UpstreamApiClient",
    "LeaderboardApi",
    "MapIndexClient",
    "PlayerNameResolver",
    "TokenCache",
    "TokenProvider",
    "LiveServicesTokenProvider",
    "OAuthTokenProvider",
    "LeaderboardRecord",
    "MapInfo",
    "MapSnapshot",
    "PositionEntry",
    "TokenPair",
]
