"""
Upstream - Type Definitions.

============================================================
PURPOSE
============================================================
Shared types for the upstream layer.

- Parsed map index entries
- Leaderboard records and position snapshots
- Credential pairs

============================================================
DESIGN PRINCIPLES
============================================================
- Immutable data structures where possible
- Parsing from raw JSON lives next to the type
- No business logic

============================================================
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from core.exceptions import UpstreamDataError


# =============================================================
# MAP INDEX
# =============================================================

@dataclass(frozen=True)
class MapInfo:
    """One map from the public map index."""
    map_id: int
    map_uid: str
    name: str

    @classmethod
    def from_index(cls, raw: Dict[str, Any]) -> "MapInfo":
        try:
            return cls(
                map_id=int(raw["MapId"]),
                map_uid=str(raw["MapUid"]),
                name=str(raw.get("Name", "")),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamDataError(f"Malformed map index entry: {e}") from e


# =============================================================
# LEADERBOARDS
# =============================================================

@dataclass
class LeaderboardRecord:
    """One entry of a map's top leaderboard."""
    account_id: str
    position: int
    score: int
    """Time in milliseconds."""
    timestamp: int
    """Unix seconds when the record was driven."""
    zone_name: str = ""
    player_name: Optional[str] = None

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "LeaderboardRecord":
        try:
            return cls(
                account_id=str(raw["accountId"]),
                position=int(raw["position"]),
                score=int(raw["score"]),
                timestamp=int(raw["timestamp"]),
                zone_name=str(raw.get("zoneName") or ""),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamDataError(f"Malformed leaderboard record: {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accountId": self.account_id,
            "playerName": self.player_name,
            "zoneName": self.zone_name,
            "position": self.position,
            "score": self.score,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class PositionEntry:
    """One ranked player in a batched position snapshot."""
    account_id: str
    position: int
    score: int
    login: Optional[str] = None

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "PositionEntry":
        try:
            return cls(
                account_id=str(raw.get("accountId") or ""),
                position=int(raw["position"]),
                score=int(raw["score"]),
                login=raw.get("login"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamDataError(f"Malformed position entry: {e}") from e


@dataclass
class MapSnapshot:
    """Ranked entries of one map as returned by the position endpoint."""
    map_uid: str
    entries: List[PositionEntry] = field(default_factory=list)

    def find(self, account_id: str, display_name: Optional[str] = None) -> Optional[PositionEntry]:
        """Match by account id, falling back to login/display name."""
        for entry in self.entries:
            if entry.account_id and entry.account_id == account_id:
                return entry
        if display_name:
            for entry in self.entries:
                if entry.login and entry.login == display_name:
                    return entry
        return None

    @property
    def ranked_count(self) -> int:
        return max((e.position for e in self.entries), default=0)

    @property
    def best_score(self) -> Optional[int]:
        return min((e.score for e in self.entries), default=None)


# =============================================================
# CREDENTIALS
# =============================================================

@dataclass(frozen=True)
class TokenPair:
    """Access credential plus the refresh credential issued with it."""
    access_token: str
    refresh_token: Optional[str] = None
