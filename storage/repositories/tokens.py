"""
Upstream Token Repository.

Shared credential cache. Writes are last-writer-wins upserts on
(provider, token_type).
"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from core.clock import ClockProtocol
from storage.models.tokens import UpstreamToken
from storage.repositories.base import BaseRepository


class TokenRepository(BaseRepository[UpstreamToken]):
    """Repository for UpstreamToken records."""

    def __init__(self, session: Session, clock: Optional[ClockProtocol] = None) -> None:
        super().__init__(session, UpstreamToken, "TokenRepository", clock)

    def get(self, provider: str, token_type: str) -> Optional[UpstreamToken]:
        return self._get_by_id((provider, token_type))

    def save(
        self,
        provider: str,
        token_type: str,
        token: str,
        expires_at: datetime,
        created_at: Optional[datetime] = None,
    ) -> None:
        stmt = self._dialect_insert().values(
            provider=provider,
            token_type=token_type,
            token=token,
            created_at=created_at or self._clock.now(),
            expires_at=expires_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["provider", "token_type"],
            set_={
                "token": stmt.excluded.token,
                "created_at": stmt.excluded.created_at,
                "expires_at": stmt.excluded.expires_at,
            },
        )
        self._execute_write(stmt, "save")
        self._logger.debug(f"Stored {provider}/{token_type} credential")
