"""
Inbound webhook and campaign trigger schemas.
"""

from pydantic import BaseModel, ConfigDict, Field


class InboundMessageContent(BaseModel):
    """The `message` object of one Infobip WhatsApp inbound result."""

    model_config = ConfigDict(extra="allow")

    type: str
    id: str | int | None = None  # Button id on INTERACTIVE_BUTTON_REPLY
    text: str | None = None
    title: str | None = None


class InboundEvent(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    message_id: str = Field(alias="messageId")
    sender: str = Field(alias="from", min_length=1)
    to: str
    message: InboundMessageContent


class InboundBatch(BaseModel):
    results: list[InboundEvent]


class ButtonResponse(BaseModel):
    type: str
    id: str
    title: str


class QuestionBroadcastResponse(BaseModel):
    question: int
    text: str
    answers: list[ButtonResponse]
    sent: int
    failed: int


class QuestionSummary(BaseModel):
    id: int
    question: str
    answers: list[ButtonResponse]


class CouponDeliveryResponse(BaseModel):
    user_id: int
    phone: str
    coupon_id: int
    send_failures: int


class CouponBroadcastResponse(BaseModel):
    assigned: list[CouponDeliveryResponse]
    skipped_already_assigned: int
    exhausted: bool
    unserved: int
