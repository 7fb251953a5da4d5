"""FastAPI dependencies wiring stores and capabilities into the campaign services."""

from fastapi import Depends, Request
from sqlalchemy.orm import sessionmaker

from app.core.config import settings
from app.db.deps import get_session_factory
from app.services.answers import AnswerLedger
from app.services.broadcast import BroadcastDispatcher, CouponMessages
from app.services.contacts import ContactRegistry
from app.services.coupons import CouponAllocator
from app.services.idempotency import InboundDeduplicator
from app.services.inbound import InboundEventProcessor, ProcessorPolicy
from app.services.messaging.outbound import MessagingCapability
from app.services.realtime import RealtimePublisher


def get_messaging(request: Request) -> MessagingCapability:
    return request.app.state.messaging


def get_publisher(request: Request) -> RealtimePublisher | None:
    return getattr(request.app.state, "publisher", None)


def get_contact_registry(
    session_factory: sessionmaker = Depends(get_session_factory),
) -> ContactRegistry:
    return ContactRegistry(session_factory)


def get_answer_ledger(
    session_factory: sessionmaker = Depends(get_session_factory),
) -> AnswerLedger:
    return AnswerLedger(session_factory)


def get_coupon_allocator(
    session_factory: sessionmaker = Depends(get_session_factory),
) -> CouponAllocator:
    return CouponAllocator(session_factory)


def get_inbound_processor(
    session_factory: sessionmaker = Depends(get_session_factory),
    registry: ContactRegistry = Depends(get_contact_registry),
    ledger: AnswerLedger = Depends(get_answer_ledger),
    messaging: MessagingCapability = Depends(get_messaging),
    publisher: RealtimePublisher | None = Depends(get_publisher),
) -> InboundEventProcessor:
    deduplicator = (
        InboundDeduplicator(session_factory) if settings.inbound_dedupe_enabled else None
    )
    return InboundEventProcessor(
        registry=registry,
        ledger=ledger,
        messaging=messaging,
        policy=ProcessorPolicy.from_settings(settings),
        publisher=publisher,
        deduplicator=deduplicator,
    )


def get_broadcast_dispatcher(
    request: Request,
    registry: ContactRegistry = Depends(get_contact_registry),
    ledger: AnswerLedger = Depends(get_answer_ledger),
    allocator: CouponAllocator = Depends(get_coupon_allocator),
    messaging: MessagingCapability = Depends(get_messaging),
) -> BroadcastDispatcher:
    return BroadcastDispatcher(
        registry=registry,
        ledger=ledger,
        allocator=allocator,
        messaging=messaging,
        coupon_messages=CouponMessages.from_settings(settings),
        coupon_lock=request.app.state.coupon_lock,
    )
