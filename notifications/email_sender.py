"""
Email Sender.

============================================================
PURPOSE
============================================================
Outbound email channel for daily digests.

PRINCIPLES:
- Accepts (address, subject, body), returns success/failure
- Never raises for delivery failures
- One HTTP session reused across sends

============================================================
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import aiohttp

from core.config import EmailConfig


logger = logging.getLogger("notifications.email")


@dataclass(frozen=True)
class SendResult:
    """Outcome of one send."""
    success: bool
    error: Optional[str] = None
    message_id: Optional[str] = None


class EmailSender(ABC):
    """Email collaborator contract."""

    @abstractmethod
    async def send(self, to: str, subject: str, body: str) -> SendResult:
        pass

    async def close(self) -> None:
        pass


class HttpEmailSender(EmailSender):
    """
    Sends through a transactional email HTTP API.

    POSTs {from, to, subject, text} as JSON with a bearer key.
    """

    def __init__(self, config: EmailConfig) -> None:
        self._config = config
        self._session: Optional[aiohttp.ClientSession] = None
        self._enabled = bool(config.api_url)

        if not self._enabled:
            logger.warning("HttpEmailSender NOT configured - check EMAIL_API_URL")

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._config.timeout_seconds)
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def send(self, to: str, subject: str, body: str) -> SendResult:
        if not self._enabled:
            return SendResult(False, error="email sender not configured")

        payload = {
            "from": self._config.from_address,
            "to": to,
            "subject": subject,
            "text": body,
        }
        headers = {}
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"

        try:
            session = await self._get_session()
            async with session.post(self._config.api_url, json=payload, headers=headers) as response:
                if 200 <= response.status < 300:
                    message_id = None
                    if response.content_type == "application/json":
                        data = await response.json()
                        if isinstance(data, dict):
                            message_id = data.get("id")
                    return SendResult(True, message_id=message_id)

                text = await response.text()
                logger.error(f"Email API error: {response.status} - {text[:200]}")
                return SendResult(False, error=f"HTTP {response.status}")

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Error sending email to {to}: {e}")
            return SendResult(False, error=str(e) or type(e).__name__)
