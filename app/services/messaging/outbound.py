"""
Outbound message shapes and the messaging capability contract.

The campaign core depends only on MessagingCapability; the Infobip client is one
implementation and tests inject in-memory fakes.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from app.constants.message_types import (
    BUTTON_TITLE_MAX_LENGTH,
    BUTTON_TYPE_REPLY,
    MAX_BUTTONS,
    OUTBOUND_IMAGE,
    OUTBOUND_INTERACTIVE_BUTTONS,
    OUTBOUND_TEXT,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutboundMessage:
    type: str  # text | image | interactive-buttons
    to: str
    content: dict[str, Any]
    sender: str | None = None  # Defaults to the client's configured sender


@dataclass(frozen=True)
class DeliveryResult:
    status: str  # provider status group name, or "dry_run"
    to: str
    message_id: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


class MessagingCapability(Protocol):
    async def send(self, message: OutboundMessage) -> DeliveryResult: ...

    async def mark_as_read(self, to: str, message_id: str) -> None: ...


def text_message(to: str, text: str) -> OutboundMessage:
    return OutboundMessage(type=OUTBOUND_TEXT, to=to, content={"text": text})


def image_message(to: str, media_url: str, caption: str | None = None) -> OutboundMessage:
    content: dict[str, Any] = {"mediaUrl": media_url}
    if caption:
        content["caption"] = caption
    return OutboundMessage(type=OUTBOUND_IMAGE, to=to, content=content)


def reply_buttons(options: list[tuple[int, str]]) -> list[dict[str, str]]:
    """
    Build REPLY buttons from (answer_id, answer_text) pairs.

    Button id is the answer id as a string so the reply maps back to the answer.
    """
    if len(options) > MAX_BUTTONS:
        logger.warning(f"WhatsApp supports max {MAX_BUTTONS} buttons, truncating {len(options)}")
        options = options[:MAX_BUTTONS]
    return [
        {"type": BUTTON_TYPE_REPLY, "id": str(answer_id), "title": text[:BUTTON_TITLE_MAX_LENGTH]}
        for answer_id, text in options
    ]


def buttons_message(to: str, body: str, buttons: list[dict[str, str]]) -> OutboundMessage:
    return OutboundMessage(
        type=OUTBOUND_INTERACTIVE_BUTTONS,
        to=to,
        content={"body": {"text": body}, "action": {"buttons": buttons}},
    )
