"""
Notification Service

Sends text messages through the Twilio REST API. SMS is the primary
channel; when an SMS send fails and a WhatsApp sender is configured the
same body is retried over WhatsApp.
"""

import logging
from typing import Optional

import httpx

from app.config import get_settings

logger = logging.getLogger(__name__)


class NotificationError(Exception):
    """Raised when a message could not be delivered on any channel."""
    pass


def mask_phone(phone: Optional[str]) -> str:
    """Last four digits only, for log lines."""
    if not phone:
        return "<none>"
    return f"***{phone[-4:]}"


class NotificationService:
    """Twilio messaging gateway."""

    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        sms_from: Optional[str] = None,
        whatsapp_from: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize notification service.

        Args:
            account_sid: Twilio account SID (defaults to settings)
            auth_token: Twilio auth token (defaults to settings)
            sms_from: SMS sender number in E.164
            whatsapp_from: WhatsApp sender number in E.164
            transport: Optional httpx transport (for testing)
        """
        settings = get_settings()
        self.account_sid = account_sid or settings.twilio_account_sid
        self.auth_token = auth_token or settings.twilio_auth_token
        self.sms_from = sms_from or settings.twilio_from_number
        self.whatsapp_from = whatsapp_from or settings.twilio_whatsapp_from
        self.base_url = settings.twilio_api_url
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def enabled(self) -> bool:
        return bool(
            self.account_sid
            and self.auth_token
            and (self.sms_from or self.whatsapp_from)
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                auth=(self.account_sid, self.auth_token),
                timeout=20.0,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _post_message(self, to: str, from_: str, body: str) -> str:
        client = await self._get_client()
        response = await client.post(
            f"/Accounts/{self.account_sid}/Messages.json",
            data={"To": to, "From": from_, "Body": body},
        )
        response.raise_for_status()
        return response.json().get("sid", "")

    async def send_sms(self, to: str, message: str) -> Optional[str]:
        """Send a text message, falling back to WhatsApp.

        Args:
            to: Phone number (E.164 format)
            message: Message text

        Returns:
            Twilio message SID, or None when messaging is not configured

        Raises:
            NotificationError: If every configured channel failed
        """
        if not self.enabled or not to:
            logger.warning(
                f"Message to {mask_phone(to)} not sent - messaging not configured or no recipient"
            )
            return None

        to = to.removeprefix("whatsapp:")
        errors = []

        if self.sms_from:
            try:
                sid = await self._post_message(to, self.sms_from, message)
                logger.info(f"SMS sent to {mask_phone(to)} sid={sid}")
                return sid
            except (httpx.HTTPError, ValueError) as e:
                logger.warning(f"SMS to {mask_phone(to)} failed: {e}")
                errors.append(f"sms: {e}")

        if self.whatsapp_from:
            try:
                sid = await self._post_message(
                    f"whatsapp:{to}", f"whatsapp:{self.whatsapp_from}", message
                )
                logger.info(f"WhatsApp message sent to {mask_phone(to)} sid={sid}")
                return sid
            except (httpx.HTTPError, ValueError) as e:
                logger.warning(f"WhatsApp message to {mask_phone(to)} failed: {e}")
                errors.append(f"whatsapp: {e}")

        raise NotificationError("; ".join(errors) or "no channel available")


# Singleton
_service: Optional[NotificationService] = None


def get_notification_service() -> NotificationService:
    """Get singleton NotificationService."""
    global _service
    if _service is None:
        _service = NotificationService()
    return _service
