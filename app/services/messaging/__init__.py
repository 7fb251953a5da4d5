# Messaging: outbound message shapes, the messaging capability contract, Infobip client
# Re-export so "from app.services.messaging import ..." works for callers.

from app.services.messaging.infobip import InfobipWhatsAppClient
from app.services.messaging.outbound import (
    DeliveryResult,
    MessagingCapability,
    OutboundMessage,
    buttons_message,
    image_message,
    reply_buttons,
    text_message,
)

__all__ = [
    "DeliveryResult",
    "InfobipWhatsAppClient",
    "MessagingCapability",
    "OutboundMessage",
    "buttons_message",
    "image_message",
    "reply_buttons",
    "text_message",
]
