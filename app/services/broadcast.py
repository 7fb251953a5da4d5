"""
Broadcast dispatcher: question and coupon fan-out to registered contacts.

Both broadcasts are best-effort per recipient: one failed delivery never aborts the
rest. Coupon runs claim coupons in registry order, so with fewer coupons than
contacts exactly the first contacts are served and the rest receive nothing.
"""

import asyncio
import logging
from dataclasses import dataclass

from app.core.config import Settings
from app.core.errors import CouponAssignmentError, CouponRunInterrupted, ProviderError
from app.services.answers import AnswerLedger
from app.services.contacts import Contact, ContactRegistry
from app.services.coupons import ClaimedCoupon, CouponAllocator
from app.services.messaging.outbound import (
    MessagingCapability,
    OutboundMessage,
    buttons_message,
    reply_buttons,
    text_message,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CouponMessages:
    intro: list[str]
    followup: list[str]

    @classmethod
    def from_settings(cls, settings: Settings) -> "CouponMessages":
        return cls(
            intro=list(settings.coupon_intro_messages),
            followup=list(settings.coupon_followup_messages),
        )

    def sequence(self, code: str) -> list[str]:
        # The code goes in a message of its own so it can be copied directly
        return [*self.intro, code, *self.followup]


@dataclass
class QuestionBroadcast:
    question_id: int
    text: str
    buttons: list[dict[str, str]]
    sent: int
    failed: int


@dataclass
class CouponDelivery:
    user_id: int
    phone: str
    coupon_id: int
    send_failures: int


@dataclass
class CouponBroadcast:
    deliveries: list[CouponDelivery]
    skipped_already_assigned: int
    exhausted: bool
    unserved: int


class BroadcastDispatcher:
    def __init__(
        self,
        registry: ContactRegistry,
        ledger: AnswerLedger,
        allocator: CouponAllocator,
        messaging: MessagingCapability,
        coupon_messages: CouponMessages,
        coupon_lock: asyncio.Lock | None = None,
    ):
        self.registry = registry
        self.ledger = ledger
        self.allocator = allocator
        self.messaging = messaging
        self.coupon_messages = coupon_messages
        # Serialises coupon runs within the process; share one lock per app
        self.coupon_lock = coupon_lock or asyncio.Lock()

    async def broadcast_question(self, question_id: int) -> QuestionBroadcast:
        """
        Send a question with its answer options as reply buttons to every contact.

        Raises:
            UnknownQuestion: question_id does not exist (nothing is sent)
        """
        question = self.ledger.get_question(question_id)
        buttons = reply_buttons([(option.id, option.text) for option in question.options])
        phones = self.registry.list_phones()

        delivered = await asyncio.gather(
            *(self._deliver(buttons_message(phone, question.text, buttons)) for phone in phones)
        )
        sent = sum(1 for ok in delivered if ok)
        logger.info(
            f"broadcast.question question_id={question_id} recipients={len(phones)} sent={sent}"
        )
        return QuestionBroadcast(
            question_id=question.id,
            text=question.text,
            buttons=buttons,
            sent=sent,
            failed=len(phones) - sent,
        )

    async def broadcast_coupons(self) -> CouponBroadcast:
        """
        Give one coupon to each contact, in registry order, until the pool runs out.

        Contacts already holding a coupon are skipped. Exhaustion ends the run without
        error; `exhausted` is set whenever no unclaimed coupon remains afterwards.

        Raises:
            CouponRunInterrupted: a claim failed partway; coupons claimed before it were
                still delivered and assigned.
            CouponAssignmentError: some claimed coupons could not be assigned; raised
                after every other claimed coupon has been delivered and assigned.
        """
        async with self.coupon_lock:
            return await self._run_coupon_allocation()

    async def _run_coupon_allocation(self) -> CouponBroadcast:
        contacts = self.registry.list_contacts()
        holders = self.allocator.assigned_user_ids()
        eligible = [contact for contact in contacts if contact.user_id not in holders]

        # Claims happen in registry order before any send, keeping the run prefix-stable
        claims: list[tuple[Contact, ClaimedCoupon]] = []
        exhausted = False
        claim_error: Exception | None = None
        try:
            for contact in eligible:
                coupon = self.allocator.allocate_next()
                if coupon is None:
                    exhausted = True
                    break
                claims.append((contact, coupon))
        except Exception as e:
            # Coupons claimed so far are still delivered and assigned below
            logger.error(
                f"broadcast.coupons claim failed after {len(claims)} claims: "
                f"{type(e).__name__}: {e}"
            )
            claim_error = e

        results = await asyncio.gather(
            *(self._deliver_coupon(contact, coupon) for contact, coupon in claims),
            return_exceptions=True,
        )

        deliveries: list[CouponDelivery] = []
        stranded: list[int] = []
        unexpected: BaseException | None = None
        for result in results:
            if isinstance(result, CouponAssignmentError):
                stranded.extend(result.coupon_ids)
            elif isinstance(result, BaseException):
                unexpected = unexpected or result
            else:
                deliveries.append(result)

        if claim_error is None and not exhausted:
            exhausted = self.allocator.pool_stats()["available"] == 0

        logger.info(
            f"broadcast.coupons eligible={len(eligible)} assigned={len(deliveries)} "
            f"skipped={len(contacts) - len(eligible)} exhausted={exhausted} stranded={len(stranded)}"
        )
        if claim_error is not None:
            raise CouponRunInterrupted(claim_error, len(deliveries), stranded) from claim_error
        if stranded:
            raise CouponAssignmentError(stranded, "coupon run finished with stranded coupons")
        if unexpected is not None:
            raise unexpected

        return CouponBroadcast(
            deliveries=deliveries,
            skipped_already_assigned=len(contacts) - len(eligible),
            exhausted=exhausted,
            unserved=len(eligible) - len(claims),
        )

    async def _deliver_coupon(self, contact: Contact, coupon: ClaimedCoupon) -> CouponDelivery:
        failures = 0
        try:
            for text in self.coupon_messages.sequence(coupon.code):
                if not await self._deliver(text_message(contact.phone, text)):
                    failures += 1
        finally:
            # The claimed coupon belongs to this contact whether or not the sends landed
            self.allocator.assign_to(coupon.id, contact.user_id)
        return CouponDelivery(
            user_id=contact.user_id,
            phone=contact.phone,
            coupon_id=coupon.id,
            send_failures=failures,
        )

    async def _deliver(self, message: OutboundMessage) -> bool:
        try:
            await self.messaging.send(message)
        except ProviderError as e:
            logger.warning(f"broadcast.send_failed type={message.type} to={message.to}: {e}")
            return False
        return True
