"""
Infobip WhatsApp client with dry-run mode for development.

Implements the MessagingCapability contract over the Infobip WhatsApp REST API.
"""

import logging

import httpx

from app.constants.message_types import (
    OUTBOUND_IMAGE,
    OUTBOUND_INTERACTIVE_BUTTONS,
    OUTBOUND_TEXT,
)
from app.core.config import Settings
from app.core.errors import ProviderError
from app.services.integrations.http_client import create_httpx_client
from app.services.messaging.outbound import DeliveryResult, OutboundMessage

logger = logging.getLogger(__name__)

SEND_PATHS = {
    OUTBOUND_TEXT: "/whatsapp/1/message/text",
    OUTBOUND_IMAGE: "/whatsapp/1/message/image",
    OUTBOUND_INTERACTIVE_BUTTONS: "/whatsapp/1/message/interactive/buttons",
}
MARK_AS_READ_PATH = "/whatsapp/1/senders/{sender}/message/{message_id}/read"


class InfobipWhatsAppClient:
    def __init__(
        self,
        base_url: str | None,
        api_key: str | None,
        sender: str | None,
        dry_run: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not dry_run and not (base_url and api_key and sender):
            raise ValueError(
                "Infobip base URL, API key and WhatsApp sender are required when dry-run is off"
            )
        self.sender = sender or ""
        self.dry_run = dry_run
        self._client = create_httpx_client(
            base_url=base_url or "",
            headers={
                "Authorization": f"App {api_key or ''}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "InfobipWhatsAppClient":
        return cls(
            base_url=settings.infobip_base_url,
            api_key=settings.infobip_api_key,
            sender=settings.infobip_whatsapp_sender,
            dry_run=settings.infobip_dry_run,
        )

    async def send(self, message: OutboundMessage) -> DeliveryResult:
        """
        Send one WhatsApp message.

        Raises:
            ValueError: unsupported message type
            ProviderError: transport failure or non-2xx response
        """
        path = SEND_PATHS.get(message.type)
        if path is None:
            raise ValueError(f"Unsupported outbound message type: {message.type}")

        if self.dry_run:
            logger.info(
                f"[DRY-RUN] Would send WhatsApp {message.type} to {message.to}: {message.content}"
            )
            return DeliveryResult(status="dry_run", to=message.to)

        payload = {
            "from": message.sender or self.sender,
            "to": message.to,
            "content": message.content,
        }
        data = await self._post(f"send {message.type}", path, payload)
        status = (data.get("status") or {}).get("groupName", "UNKNOWN")
        return DeliveryResult(
            status=status,
            to=data.get("to", message.to),
            message_id=data.get("messageId"),
            raw=data,
        )

    async def mark_as_read(self, to: str, message_id: str) -> None:
        """Mark an inbound message read. `to` is the business sender that received it."""
        if self.dry_run:
            logger.info(f"[DRY-RUN] Would mark message {message_id} read for sender {to}")
            return
        path = MARK_AS_READ_PATH.format(sender=to, message_id=message_id)
        await self._post("mark as read", path, None)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, operation: str, path: str, payload: dict | None) -> dict:
        try:
            response = await self._client.post(path, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                operation, e.response.text[:500], status_code=e.response.status_code
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(operation, f"{type(e).__name__}: {e}") from e
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {}
