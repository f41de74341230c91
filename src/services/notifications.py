"""
E-mail Notification Gateway.

Posts messages to an HTTP mail relay. Without a configured relay URL the
messages are only logged. Delivery failures are logged and reported as a
False return; callers never see an exception.
"""

from dataclasses import dataclass, field
from typing import Optional

import httpx

from src.api.config import settings
from src.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class EmailMessage:
    """Outgoing e-mail."""

    to: list[str]
    subject: str
    body: str
    tags: list[str] = field(default_factory=list)


class NotificationGateway:
    """HTTP mail relay client."""

    def __init__(
        self,
        relay_url: Optional[str] = None,
        api_key: Optional[str] = None,
        sender: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.relay_url = relay_url if relay_url is not None else settings.MAIL_RELAY_URL
        self.api_key = api_key if api_key is not None else settings.MAIL_RELAY_API_KEY
        self.sender = sender or settings.MAIL_FROM
        self.timeout_seconds = timeout_seconds or settings.MAIL_TIMEOUT_SECONDS
        self._transport = transport

    async def send(self, message: EmailMessage) -> bool:
        """
        Deliver one message.

        Returns:
            True if the relay accepted it (or it was logged in log-only mode)
        """
        recipients = [r for r in message.to if r]
        if not recipients:
            logger.warning(f"Skipping '{message.subject}': no recipients")
            return False

        if not self.relay_url:
            logger.info(f"[mail:log-only] to={', '.join(recipients)} subject={message.subject!r}")
            return True

        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        payload = {
            "from": self.sender,
            "to": recipients,
            "subject": message.subject,
            "text": message.body,
            "tags": message.tags,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.post(self.relay_url, json=payload, headers=headers)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to send '{message.subject}' to {', '.join(recipients)}: {e}")
            return False

        logger.info(f"Sent '{message.subject}' to {', '.join(recipients)}")
        return True

    async def send_many(self, messages: list[EmailMessage]) -> int:
        """
        Deliver messages one by one.

        Returns:
            Number of messages attempted
        """
        for message in messages:
            await self.send(message)
        return len(messages)


_notification_gateway: Optional[NotificationGateway] = None


def get_notification_gateway() -> NotificationGateway:
    """Get singleton NotificationGateway instance."""
    global _notification_gateway
    if _notification_gateway is None:
        _notification_gateway = NotificationGateway()
    return _notification_gateway
