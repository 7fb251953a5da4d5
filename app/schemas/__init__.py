"""
Pydantic schemas for API request/response validation.
"""

from app.schemas.messages import (
    ButtonResponse,
    CouponBroadcastResponse,
    CouponDeliveryResponse,
    InboundBatch,
    InboundEvent,
    InboundMessageContent,
    QuestionBroadcastResponse,
    QuestionSummary,
)

__all__ = [
    "InboundMessageContent",
    "InboundEvent",
    "InboundBatch",
    "ButtonResponse",
    "QuestionBroadcastResponse",
    "QuestionSummary",
    "CouponDeliveryResponse",
    "CouponBroadcastResponse",
]
