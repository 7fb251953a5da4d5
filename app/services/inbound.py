"""
Inbound event processor.

Interprets each inbound webhook event against the contact registry and answer ledger
and emits outbound messages. Per event:

1. Register the sender; a brand-new contact gets the onboarding sequence first,
   even when the first message is itself a button reply.
2. A button reply is parsed as an answer id, recorded (last reply wins) and
   published on the realtime channel.
3. The message is marked read.
4. The closing message, if the policy has one, is sent.

Events of a batch run as independent tasks and are all awaited before the batch
result is returned. A rejected event never blocks its siblings. Provider failures
are logged and never unwind committed store writes.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from enum import Enum

from app.constants.message_types import INBOUND_INTERACTIVE_BUTTON_REPLY
from app.core.config import Settings
from app.core.errors import (
    ContactNotFound,
    EventValidationError,
    MalformedAnswerId,
    ProviderError,
    error_summary,
)
from app.schemas.messages import InboundEvent
from app.services.answers import AnswerLedger, RecordedAnswer
from app.services.contacts import ContactRegistry
from app.services.idempotency import InboundDeduplicator
from app.services.messaging.outbound import (
    MessagingCapability,
    OutboundMessage,
    image_message,
    text_message,
)
from app.services.realtime import RealtimePublisher

logger = logging.getLogger(__name__)


class EventState(str, Enum):
    NEW_CONTACT = "NEW_CONTACT"
    BUTTON_REPLY = "BUTTON_REPLY"
    PLAIN_MESSAGE = "PLAIN_MESSAGE"


@dataclass(frozen=True)
class ProcessorPolicy:
    """Which outbound texts/media are sent and whether answers are published."""

    welcome_text: str
    onboarding_media_url: str | None
    closing_message: str | None = None
    realtime_channel: str | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProcessorPolicy":
        return cls(
            welcome_text=settings.welcome_text,
            onboarding_media_url=settings.onboarding_media_url or None,
            closing_message=settings.closing_message or None,
            realtime_channel=settings.realtime_channel or None,
        )


@dataclass
class EventOutcome:
    message_id: str
    sender: str
    states: list[EventState] = field(default_factory=list)
    user_id: int | None = None
    answer: RecordedAnswer | None = None
    duplicate: bool = False
    send_failures: int = 0
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        return {
            "message_id": self.message_id,
            "from": self.sender,
            "states": [state.value for state in self.states],
            "user_id": self.user_id,
            "answer": (
                {
                    "user_id": self.answer.user_id,
                    "question_id": self.answer.question_id,
                    "answer_id": self.answer.answer_id,
                }
                if self.answer
                else None
            ),
            "duplicate": self.duplicate,
            "send_failures": self.send_failures,
            "error": error_summary(self.error) if self.error else None,
        }


@dataclass
class BatchResult:
    outcomes: list[EventOutcome]

    @property
    def first_error(self) -> Exception | None:
        return next((o.error for o in self.outcomes if o.error is not None), None)

    @property
    def failed(self) -> list[EventOutcome]:
        return [o for o in self.outcomes if o.error is not None]


def parse_answer_id(raw_id: object) -> int:
    """Button reply ids are answer ids serialised as strings."""
    if isinstance(raw_id, bool):
        raise MalformedAnswerId(raw_id)
    try:
        return int(str(raw_id).strip())
    except (TypeError, ValueError):
        raise MalformedAnswerId(raw_id) from None


class InboundEventProcessor:
    def __init__(
        self,
        registry: ContactRegistry,
        ledger: AnswerLedger,
        messaging: MessagingCapability,
        policy: ProcessorPolicy,
        publisher: RealtimePublisher | None = None,
        deduplicator: InboundDeduplicator | None = None,
    ):
        self.registry = registry
        self.ledger = ledger
        self.messaging = messaging
        self.policy = policy
        self.publisher = publisher
        self.deduplicator = deduplicator

    async def process_batch(self, events: list[InboundEvent]) -> BatchResult:
        outcomes = await asyncio.gather(*(self.process_event(event) for event in events))
        result = BatchResult(outcomes=list(outcomes))
        if result.failed:
            logger.warning(
                f"inbound.batch_processed events={len(events)} failed={len(result.failed)}"
            )
        return result

    async def process_event(self, event: InboundEvent) -> EventOutcome:
        """Process one event. Never raises: failures are returned on the outcome."""
        outcome = EventOutcome(message_id=event.message_id, sender=event.sender)
        try:
            await self._handle(event, outcome)
        except EventValidationError as e:
            logger.warning(f"inbound.event_rejected message_id={event.message_id}: {e}")
            outcome.error = e
        except ContactNotFound as e:
            # Registration just succeeded, so this is an invariant violation
            logger.error(f"inbound.contact_missing message_id={event.message_id}: {e}")
            outcome.error = e
        except Exception as e:
            logger.exception(f"inbound.event_failed message_id={event.message_id}")
            outcome.error = e
        return outcome

    async def _handle(self, event: InboundEvent, outcome: EventOutcome) -> None:
        registration = self.registry.register_if_absent(event.sender)
        outcome.user_id = registration.user_id

        if self.deduplicator is not None and not self.deduplicator.claim(
            event.message_id, user_id=registration.user_id
        ):
            outcome.duplicate = True
            return

        if registration.was_new:
            outcome.states.append(EventState.NEW_CONTACT)
            await self._onboard(event.sender, outcome)

        if event.message.type == INBOUND_INTERACTIVE_BUTTON_REPLY:
            outcome.states.append(EventState.BUTTON_REPLY)
            outcome.answer = await self._record_reply(event)
        else:
            outcome.states.append(EventState.PLAIN_MESSAGE)

        try:
            await self.messaging.mark_as_read(event.to, event.message_id)
        except ProviderError as e:
            logger.warning(f"inbound.mark_as_read_failed message_id={event.message_id}: {e}")

        if self.policy.closing_message:
            await self._send(text_message(event.sender, self.policy.closing_message), outcome)

    async def _onboard(self, phone: str, outcome: EventOutcome) -> None:
        # Sequential: the welcome text must arrive before the media
        await self._send(text_message(phone, self.policy.welcome_text), outcome)
        if self.policy.onboarding_media_url:
            await self._send(image_message(phone, self.policy.onboarding_media_url), outcome)

    async def _record_reply(self, event: InboundEvent) -> RecordedAnswer:
        user_id = self.registry.lookup_id(event.sender)
        answer_id = parse_answer_id(event.message.id)
        recorded = self.ledger.record_answer(user_id, answer_id)

        if self.publisher is not None and self.policy.realtime_channel:
            payload = json.dumps(
                {
                    "userId": recorded.user_id,
                    "answerId": recorded.answer_id,
                    "questionId": recorded.question_id,
                }
            )
            try:
                await self.publisher.publish(self.policy.realtime_channel, payload)
            except ProviderError as e:
                logger.warning(f"realtime.publish_failed user_id={user_id}: {e}")
        return recorded

    async def _send(self, message: OutboundMessage, outcome: EventOutcome) -> None:
        try:
            await self.messaging.send(message)
        except ProviderError as e:
            outcome.send_failures += 1
            logger.warning(f"inbound.send_failed type={message.type} to={message.to}: {e}")
