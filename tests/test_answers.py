"""
Tests for the answer ledger and question catalogue.
"""

import pytest
from sqlalchemy import func, select

from app.core.errors import UnknownAnswer, UnknownQuestion
from app.db.models import UserAnswer
from app.services.answers import AnswerLedger
from app.services.contacts import ContactRegistry
from tests.helpers.campaign import seed_question


@pytest.fixture
def user_id(session_factory):
    return ContactRegistry(session_factory).register_if_absent("+1555").user_id


def test_record_answer_resolves_question(session_factory, question, user_id):
    ledger = AnswerLedger(session_factory)

    recorded = ledger.record_answer(user_id, question.answer_ids[1])

    assert recorded.question_id == question.id
    assert recorded.answer_id == question.answer_ids[1]
    assert ledger.current_answer(user_id, question.id) == question.answer_ids[1]


def test_last_reply_wins(session_factory, db, question, user_id):
    ledger = AnswerLedger(session_factory)

    ledger.record_answer(user_id, question.answer_ids[0])
    ledger.record_answer(user_id, question.answer_ids[2])

    assert ledger.current_answer(user_id, question.id) == question.answer_ids[2]
    count = db.execute(select(func.count()).select_from(UserAnswer)).scalar_one()
    assert count == 1


def test_answers_to_different_questions_are_kept_separately(session_factory, db, question, user_id):
    other = seed_question(db, "Best pizza topping?", ["Basil", "Pineapple"])
    ledger = AnswerLedger(session_factory)

    ledger.record_answer(user_id, question.answer_ids[0])
    ledger.record_answer(user_id, other.answer_ids[1])

    assert ledger.current_answer(user_id, question.id) == question.answer_ids[0]
    assert ledger.current_answer(user_id, other.id) == other.answer_ids[1]


def test_unknown_answer_leaves_ledger_unchanged(session_factory, db, question, user_id):
    ledger = AnswerLedger(session_factory)
    ledger.record_answer(user_id, question.answer_ids[0])

    with pytest.raises(UnknownAnswer):
        ledger.record_answer(user_id, 9999)

    assert ledger.current_answer(user_id, question.id) == question.answer_ids[0]
    count = db.execute(select(func.count()).select_from(UserAnswer)).scalar_one()
    assert count == 1


def test_current_answer_none_when_unanswered(session_factory, question, user_id):
    assert AnswerLedger(session_factory).current_answer(user_id, question.id) is None


def test_get_question_with_options_in_id_order(session_factory, question):
    loaded = AnswerLedger(session_factory).get_question(question.id)

    assert loaded.text == "Which planet is largest?"
    assert [o.id for o in loaded.options] == question.answer_ids
    assert [o.text for o in loaded.options] == ["Jupiter", "Saturn", "Neptune"]


def test_get_question_unknown_raises(session_factory, db):
    with pytest.raises(UnknownQuestion):
        AnswerLedger(session_factory).get_question(42)


def test_list_questions(session_factory, db, question):
    other = seed_question(db, "Best pizza topping?", ["Basil", "Pineapple"])

    questions = AnswerLedger(session_factory).list_questions()

    assert [q.id for q in questions] == [question.id, other.id]
    assert [o.text for o in questions[1].options] == ["Basil", "Pineapple"]
