import logging

from fastapi import APIRouter, Depends, HTTPException, Path, Security
from fastapi.responses import JSONResponse
from sqlalchemy.orm import sessionmaker

from app.api.auth import get_admin_auth
from app.api.dependencies import (
    get_answer_ledger,
    get_broadcast_dispatcher,
    get_inbound_processor,
)
from app.constants.event_types import (
    EVENT_CONTACT_NOT_FOUND,
    EVENT_COUPON_POOL_EXHAUSTED,
    EVENT_COUPON_RUN_INTERRUPTED,
    EVENT_INBOUND_DUPLICATE,
    EVENT_INBOUND_EVENT_REJECTED,
    EVENT_INBOUND_WEBHOOK_FAILURE,
    EVENT_PROVIDER_SEND_FAILURE,
)
from app.core.errors import (
    ContactNotFound,
    CouponAssignmentError,
    CouponRunInterrupted,
    UnknownQuestion,
    error_summary,
)
from app.db.deps import get_session_factory
from app.schemas.messages import (
    ButtonResponse,
    CouponBroadcastResponse,
    CouponDeliveryResponse,
    InboundBatch,
    QuestionBroadcastResponse,
    QuestionSummary,
)
from app.services.answers import AnswerLedger
from app.services.broadcast import BroadcastDispatcher
from app.services.inbound import EventOutcome, InboundEventProcessor
from app.services.messaging.outbound import reply_buttons
from app.services.system_event_service import record_event

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/inbound")
async def message_inbound(
    batch: InboundBatch,
    processor: InboundEventProcessor = Depends(get_inbound_processor),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    """
    Infobip WhatsApp inbound webhook.

    Every event of the batch is processed (and awaited) before responding. Always
    answers 200 so the provider does not redeliver the batch; per-event failures and
    the first error are reported in the body.
    """
    logger.info(f"inbound.received events={len(batch.results)}")
    try:
        result = await processor.process_batch(batch.results)
    except Exception as e:
        logger.error(f"Inbound webhook failed: {type(e).__name__}: {e}", exc_info=True)
        record_event(
            session_factory,
            "ERROR",
            EVENT_INBOUND_WEBHOOK_FAILURE,
            payload={"events": len(batch.results)},
            exc=e,
        )
        return {"received": True, "processed": 0, "events": [], "error": error_summary(e)}

    for outcome in result.outcomes:
        _record_outcome_events(session_factory, outcome)

    first_error = result.first_error
    return {
        "received": True,
        "processed": len(result.outcomes) - len(result.failed),
        "events": [outcome.to_dict() for outcome in result.outcomes],
        "error": error_summary(first_error) if first_error else None,
    }


def _record_outcome_events(session_factory: sessionmaker, outcome: EventOutcome) -> None:
    payload = {"message_id": outcome.message_id}
    if isinstance(outcome.error, ContactNotFound):
        record_event(
            session_factory,
            "ERROR",
            EVENT_CONTACT_NOT_FOUND,
            payload=payload,
            exc=outcome.error,
        )
    elif outcome.error is not None:
        record_event(
            session_factory,
            "WARN",
            EVENT_INBOUND_EVENT_REJECTED,
            user_id=outcome.user_id,
            payload=payload,
            exc=outcome.error,
        )
    if outcome.duplicate:
        record_event(
            session_factory, "INFO", EVENT_INBOUND_DUPLICATE, user_id=outcome.user_id, payload=payload
        )
    if outcome.send_failures:
        record_event(
            session_factory,
            "WARN",
            EVENT_PROVIDER_SEND_FAILURE,
            user_id=outcome.user_id,
            payload={**payload, "send_failures": outcome.send_failures},
        )


@router.get("/questions", response_model=list[QuestionSummary])
def list_questions(
    ledger: AnswerLedger = Depends(get_answer_ledger),
    _auth: bool = Security(get_admin_auth),
):
    """Questions available for broadcast, with their answer options."""
    return [
        QuestionSummary(
            id=question.id,
            question=question.text,
            answers=[
                ButtonResponse(**button)
                for button in reply_buttons([(o.id, o.text) for o in question.options])
            ],
        )
        for question in ledger.list_questions()
    ]


@router.get("/question/{question_id}", response_model=QuestionBroadcastResponse)
async def broadcast_question(
    question_id: int = Path(gt=0),
    dispatcher: BroadcastDispatcher = Depends(get_broadcast_dispatcher),
    session_factory: sessionmaker = Depends(get_session_factory),
    _auth: bool = Security(get_admin_auth),
):
    """Send the question with its answer buttons to every registered contact."""
    try:
        broadcast = await dispatcher.broadcast_question(question_id)
    except UnknownQuestion as e:
        raise HTTPException(status_code=404, detail=str(e)) from e

    if broadcast.failed:
        record_event(
            session_factory,
            "WARN",
            EVENT_PROVIDER_SEND_FAILURE,
            payload={"question_id": broadcast.question_id, "failed": broadcast.failed},
        )

    return QuestionBroadcastResponse(
        question=broadcast.question_id,
        text=broadcast.text,
        answers=[ButtonResponse(**button) for button in broadcast.buttons],
        sent=broadcast.sent,
        failed=broadcast.failed,
    )


@router.get("/coupons", response_model=CouponBroadcastResponse)
async def broadcast_coupons(
    dispatcher: BroadcastDispatcher = Depends(get_broadcast_dispatcher),
    session_factory: sessionmaker = Depends(get_session_factory),
    _auth: bool = Security(get_admin_auth),
):
    """Give each registered contact one coupon, in registration order, until the pool runs out."""
    try:
        run = await dispatcher.broadcast_coupons()
    except CouponRunInterrupted as e:
        record_event(
            session_factory,
            "ERROR",
            EVENT_COUPON_RUN_INTERRUPTED,
            payload={
                "assigned": e.assigned,
                "stranded_coupon_ids": e.stranded_coupon_ids,
                "error": error_summary(e.cause),
            },
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "Coupon run interrupted while claiming; rerun to serve remaining contacts",
                "assigned": e.assigned,
                "stranded_coupon_ids": e.stranded_coupon_ids,
            },
        )
    except CouponAssignmentError as e:
        # Event already recorded per coupon by the allocator
        return JSONResponse(
            status_code=500,
            content={
                "error": "Coupons claimed but not assigned; operator attention required",
                "stranded_coupon_ids": e.coupon_ids,
            },
        )

    if run.exhausted:
        record_event(
            session_factory,
            "INFO",
            EVENT_COUPON_POOL_EXHAUSTED,
            payload={"assigned": len(run.deliveries), "unserved": run.unserved},
        )

    return CouponBroadcastResponse(
        assigned=[
            CouponDeliveryResponse(
                user_id=d.user_id,
                phone=d.phone,
                coupon_id=d.coupon_id,
                send_failures=d.send_failures,
            )
            for d in run.deliveries
        ],
        skipped_already_assigned=run.skipped_already_assigned,
        exhausted=run.exhausted,
        unserved=run.unserved,
    )
