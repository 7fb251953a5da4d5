"""
Tests for question and coupon broadcasts.
"""

import asyncio

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from app.core.errors import (
    CouponAssignmentError,
    CouponClaimContention,
    CouponRunInterrupted,
    UnknownQuestion,
)
from app.db.models import Coupon
from app.services.answers import AnswerLedger
from app.services.broadcast import BroadcastDispatcher, CouponMessages
from app.services.contacts import ContactRegistry
from app.services.coupons import CouponAllocator
from tests.helpers.campaign import seed_coupons, seed_question

COUPON_MESSAGES = CouponMessages(intro=["Here is your code:"], followup=["Enjoy!"])


@pytest.fixture
def registry(session_factory):
    return ContactRegistry(session_factory)


@pytest.fixture
def allocator(session_factory):
    return CouponAllocator(session_factory)


@pytest.fixture
def dispatcher(session_factory, registry, allocator, messenger):
    return BroadcastDispatcher(
        registry=registry,
        ledger=AnswerLedger(session_factory),
        allocator=allocator,
        messaging=messenger,
        coupon_messages=COUPON_MESSAGES,
    )


def _register(registry, *phones) -> list[int]:
    return [registry.register_if_absent(phone).user_id for phone in phones]


def test_coupon_sequence_puts_code_in_its_own_message():
    assert COUPON_MESSAGES.sequence("ABC-123") == ["Here is your code:", "ABC-123", "Enjoy!"]


@pytest.mark.asyncio
async def test_question_sent_to_every_contact(dispatcher, registry, messenger, question):
    _register(registry, "111", "222", "333")

    broadcast = await dispatcher.broadcast_question(question.id)

    assert broadcast.sent == 3
    assert broadcast.failed == 0
    assert sorted(m.to for m in messenger.sent) == ["111", "222", "333"]
    message = messenger.sent[0]
    assert message.type == "interactive-buttons"
    assert message.content["body"] == {"text": question.text}
    assert message.content["action"]["buttons"] == [
        {"type": "REPLY", "id": str(question.answer_ids[0]), "title": "Jupiter"},
        {"type": "REPLY", "id": str(question.answer_ids[1]), "title": "Saturn"},
        {"type": "REPLY", "id": str(question.answer_ids[2]), "title": "Neptune"},
    ]


@pytest.mark.asyncio
async def test_question_failing_recipient_does_not_abort_others(
    dispatcher, registry, messenger, question
):
    _register(registry, "111", "222", "333")
    messenger.fail_for.add("222")

    broadcast = await dispatcher.broadcast_question(question.id)

    assert broadcast.sent == 2
    assert broadcast.failed == 1
    assert sorted(m.to for m in messenger.sent) == ["111", "333"]


@pytest.mark.asyncio
async def test_question_buttons_truncated_to_provider_limit(dispatcher, registry, messenger, db):
    long_question = seed_question(
        db, "Pick one", ["A very long answer option text", "B", "C", "D"]
    )
    _register(registry, "111")

    broadcast = await dispatcher.broadcast_question(long_question.id)

    assert len(broadcast.buttons) == 3
    assert broadcast.buttons[0]["title"] == "A very long answer o"


@pytest.mark.asyncio
async def test_unknown_question_sends_nothing(dispatcher, registry, messenger, db):
    _register(registry, "111")

    with pytest.raises(UnknownQuestion):
        await dispatcher.broadcast_question(404)

    assert messenger.sent == []


@pytest.mark.asyncio
async def test_fewer_coupons_than_contacts_serves_registry_prefix(
    dispatcher, registry, allocator, messenger, db
):
    user_ids = _register(registry, "111", "222", "333", "444", "555")
    seed_coupons(db, 3)

    run = await dispatcher.broadcast_coupons()

    assert run.exhausted is True
    assert run.unserved == 2
    assert sorted(d.user_id for d in run.deliveries) == user_ids[:3]
    assert allocator.assigned_user_ids() == set(user_ids[:3])
    assert messenger.sent_to("444") == []
    assert messenger.sent_to("555") == []
    for delivery in run.deliveries:
        code = allocator.coupon_for_user(delivery.user_id).code
        assert messenger.texts_to(delivery.phone) == ["Here is your code:", code, "Enjoy!"]


@pytest.mark.asyncio
async def test_coupon_run_skips_contacts_already_holding_a_coupon(
    dispatcher, registry, allocator, messenger, db
):
    user_ids = _register(registry, "111", "222")
    seed_coupons(db, 4)
    await dispatcher.broadcast_coupons()
    _register(registry, "333")
    messenger.sent.clear()

    run = await dispatcher.broadcast_coupons()

    assert run.skipped_already_assigned == 2
    assert [d.phone for d in run.deliveries] == ["333"]
    assert run.exhausted is False
    assert len(allocator.assigned_user_ids()) == 3
    assert allocator.coupon_for_user(user_ids[0]) is not None
    assert {m.to for m in messenger.sent} == {"333"}


@pytest.mark.asyncio
async def test_coupon_assigned_even_when_sends_fail(dispatcher, registry, allocator, messenger, db):
    (user_id,) = _register(registry, "111")
    seed_coupons(db, 1)
    messenger.fail_for.add("111")

    run = await dispatcher.broadcast_coupons()

    assert run.deliveries[0].send_failures == 3
    assert allocator.coupon_for_user(user_id) is not None
    assert allocator.list_stranded() == []


@pytest.mark.asyncio
async def test_coupon_run_with_empty_pool(dispatcher, registry):
    _register(registry, "111")

    run = await dispatcher.broadcast_coupons()

    assert run.deliveries == []
    assert run.exhausted is True
    assert run.unserved == 1


@pytest.mark.asyncio
async def test_assignment_failure_surfaces_stranded_coupon(
    dispatcher, registry, allocator, db, monkeypatch
):
    user_ids = _register(registry, "111", "222")
    coupon_ids = seed_coupons(db, 2)
    original_assign = allocator.assign_to

    def flaky_assign(coupon_id, user_id):
        if user_id == user_ids[1]:
            raise CouponAssignmentError([coupon_id], "simulated write failure")
        return original_assign(coupon_id, user_id)

    monkeypatch.setattr(allocator, "assign_to", flaky_assign)

    with pytest.raises(CouponAssignmentError) as exc_info:
        await dispatcher.broadcast_coupons()

    assert exc_info.value.coupon_ids == [coupon_ids[1]]
    # The sibling pair still completed
    owner = db.execute(select(Coupon.user_id).where(Coupon.id == coupon_ids[0])).scalar_one()
    assert owner == user_ids[0]
    assert [c.id for c in allocator.list_stranded()] == [coupon_ids[1]]


@pytest.mark.asyncio
async def test_concurrent_coupon_runs_are_serialised(dispatcher, registry, allocator, db):
    _register(registry, "111", "222", "333")
    seed_coupons(db, 5)

    first, second = await asyncio.gather(
        dispatcher.broadcast_coupons(), dispatcher.broadcast_coupons()
    )

    assert len(first.deliveries) + len(second.deliveries) == 3
    assert len(allocator.assigned_user_ids()) == 3
    assert allocator.list_stranded() == []
    assert allocator.pool_stats()["available"] == 2


@pytest.mark.asyncio
async def test_pool_used_up_exactly_reports_exhausted(dispatcher, registry, allocator, db):
    _register(registry, "111", "222")
    seed_coupons(db, 2)

    run = await dispatcher.broadcast_coupons()

    assert len(run.deliveries) == 2
    assert run.exhausted is True
    assert run.unserved == 0


@pytest.mark.asyncio
async def test_claim_failure_still_completes_earlier_claims(
    dispatcher, registry, allocator, messenger, db, monkeypatch
):
    user_ids = _register(registry, "111", "222", "333")
    seed_coupons(db, 3)
    original_allocate = allocator.allocate_next
    calls = []

    def failing_third_claim():
        calls.append(1)
        if len(calls) == 3:
            raise OperationalError("UPDATE coupons", {}, Exception("database is locked"))
        return original_allocate()

    monkeypatch.setattr(allocator, "allocate_next", failing_third_claim)

    with pytest.raises(CouponRunInterrupted) as exc_info:
        await dispatcher.broadcast_coupons()

    assert isinstance(exc_info.value.cause, OperationalError)
    assert exc_info.value.assigned == 2
    assert exc_info.value.stranded_coupon_ids == []
    assert allocator.assigned_user_ids() == set(user_ids[:2])
    assert allocator.list_stranded() == []
    assert len(messenger.texts_to("111")) == 3
    assert messenger.sent_to("333") == []


@pytest.mark.asyncio
async def test_claim_contention_interrupts_run_instead_of_exhausting(
    dispatcher, registry, allocator, db, monkeypatch
):
    _register(registry, "111")
    seed_coupons(db, 1)

    def contended():
        raise CouponClaimContention(attempts=10, remaining=1)

    monkeypatch.setattr(allocator, "allocate_next", contended)

    with pytest.raises(CouponRunInterrupted) as exc_info:
        await dispatcher.broadcast_coupons()

    assert isinstance(exc_info.value.cause, CouponClaimContention)
    assert exc_info.value.assigned == 0
    assert allocator.pool_stats()["available"] == 1
