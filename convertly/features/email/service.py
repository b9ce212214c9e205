"""
Transactional email via the Resend HTTP API.

Sending is best-effort from the caller's point of view: a failed send raises
EmailDeliveryError, and callers log it without undoing the action that
triggered the email (signup, premium upgrade).
"""
import base64
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from convertly.features.email.templates import EmailMessage, license_email, welcome_email
from convertly.models.user import User

logger = logging.getLogger(__name__)

EMAIL_TIMEOUT_SECONDS = 10


class EmailDeliveryError(Exception):
    """Raised when the email provider rejects or cannot receive a message."""


def generate_license_key(email: str, issued_at: Optional[datetime] = None) -> str:
    issued_at = issued_at or datetime.now(timezone.utc)
    millis = int(issued_at.timestamp() * 1000)
    return base64.b64encode(f"{email}:{millis}:premium".encode("utf-8")).decode("ascii")


class ResendClient:
    def __init__(
        self,
        api_key: str,
        *,
        sender: str,
        api_url: str = "https://api.resend.com/emails",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = api_key
        self._sender = sender
        self._api_url = api_url
        self._transport = transport

    async def send(self, message: EmailMessage) -> Dict[str, Any]:
        payload = {
            "from": self._sender,
            "to": [message.to],
            "subject": message.subject,
            "html": message.html,
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}
        try:
            async with httpx.AsyncClient(timeout=EMAIL_TIMEOUT_SECONDS, transport=self._transport) as client:
                response = await client.post(self._api_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise EmailDeliveryError(f"Resend request failed: {e}") from e
        if response.status_code >= 400:
            raise EmailDeliveryError(f"Resend API error: {response.text}")
        return response.json()


class EmailService:
    """Builds and dispatches product emails. Disabled when no client is configured."""

    def __init__(self, client: Optional[ResendClient], *, base_url: str, daily_limit: int = 1):
        self._client = client
        self._base_url = base_url
        self._daily_limit = daily_limit

    @property
    def enabled(self) -> bool:
        return self._client is not None

    async def send_license_email(self, user: User) -> Optional[str]:
        """Send the premium license email; return the license key, or None when disabled."""
        if self._client is None:
            logger.warning("RESEND_API_KEY not found - license email not sent")
            return None
        key = generate_license_key(user.email)
        await self._client.send(license_email(user.email, user.username, key, self._base_url))
        logger.info("email.license_sent", extra={"user_id": user.id, "event_type": "email.license"})
        return key

    async def send_welcome_email(self, user: User) -> bool:
        if self._client is None:
            logger.warning("RESEND_API_KEY not found - welcome email not sent")
            return False
        await self._client.send(
            welcome_email(user.email, user.username, self._base_url, self._daily_limit)
        )
        logger.info("email.welcome_sent", extra={"user_id": user.id, "event_type": "email.welcome"})
        return True


def build_email_service(settings) -> EmailService:
    client = None
    if settings.RESEND_API_KEY:
        client = ResendClient(
            settings.RESEND_API_KEY,
            sender=settings.EMAIL_FROM,
            api_url=settings.RESEND_API_URL,
        )
    return EmailService(
        client,
        base_url=settings.PUBLIC_BASE_URL,
        daily_limit=settings.FREE_DAILY_CONVERSIONS,
    )
