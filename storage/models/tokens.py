"""
Upstream Token Cache ORM Model.

============================================================
PURPOSE
============================================================
Shared credential cache for the upstream API client. One row
per (provider, token_type). Written last-writer-wins: refreshing
twice concurrently is harmless.

============================================================
"""

from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from storage.models.base import Base


class UpstreamToken(Base):
    """Cached access or refresh credential."""

    __tablename__ = "upstream_tokens"

    provider: Mapped[str] = mapped_column(
        String(32),
        primary_key=True,
        comment="auth (live services) or oauth2"
    )

    token_type: Mapped[str] = mapped_column(
        String(16),
        primary_key=True,
        comment="access or refresh"
    )

    token: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="Issue time; drives the freshness window"
    )

    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
