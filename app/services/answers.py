"""
Answer ledger and question catalogue.

The ledger keeps each user's current answer per question. record_answer resolves the
answer's parent question and upserts on (user_id, question_id) in the same transaction,
so a stored answer always belongs to the stored question. Questions and answer options
are read-only here; they are seeded externally.
"""

import logging
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from app.core.errors import UnknownAnswer, UnknownQuestion
from app.db.helpers import conflict_insert
from app.db.models import Answer, Question, UserAnswer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordedAnswer:
    user_id: int
    question_id: int
    answer_id: int


@dataclass(frozen=True)
class AnswerOption:
    id: int
    text: str


@dataclass(frozen=True)
class QuestionWithOptions:
    id: int
    text: str
    options: list[AnswerOption]


class AnswerLedger:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def record_answer(self, user_id: int, answer_id: int) -> RecordedAnswer:
        """
        Record answer_id as user_id's current answer to its question (last reply wins).

        Raises:
            UnknownAnswer: answer_id does not exist (ledger unchanged)
            SQLAlchemyError: database failure (transaction rolled back)
        """
        with self._session_factory() as db:
            try:
                question_id = db.execute(
                    select(Answer.question_id).where(Answer.id == answer_id)
                ).scalar_one_or_none()
                if question_id is None:
                    raise UnknownAnswer(answer_id)

                insert_stmt = conflict_insert(db, UserAnswer).values(
                    user_id=user_id, question_id=question_id, answer_id=answer_id
                )
                upsert = insert_stmt.on_conflict_do_update(
                    index_elements=[UserAnswer.user_id, UserAnswer.question_id],
                    set_={"answer_id": insert_stmt.excluded.answer_id, "updated_at": func.now()},
                )
                db.execute(upsert)
                db.commit()
            except SQLAlchemyError:
                db.rollback()
                raise

        logger.info(
            f"answer.recorded user_id={user_id} question_id={question_id} answer_id={answer_id}"
        )
        return RecordedAnswer(user_id=user_id, question_id=question_id, answer_id=answer_id)

    def current_answer(self, user_id: int, question_id: int) -> int | None:
        with self._session_factory() as db:
            return db.execute(
                select(UserAnswer.answer_id).where(
                    UserAnswer.user_id == user_id, UserAnswer.question_id == question_id
                )
            ).scalar_one_or_none()

    def get_question(self, question_id: int) -> QuestionWithOptions:
        with self._session_factory() as db:
            question = db.get(Question, question_id)
            if question is None:
                raise UnknownQuestion(question_id)
            options = [AnswerOption(id=a.id, text=a.answer) for a in question.answers]
            return QuestionWithOptions(id=question.id, text=question.question, options=options)

    def list_questions(self) -> list[QuestionWithOptions]:
        with self._session_factory() as db:
            questions = db.execute(select(Question).order_by(Question.id)).scalars().all()
            return [
                QuestionWithOptions(
                    id=q.id,
                    text=q.question,
                    options=[AnswerOption(id=a.id, text=a.answer) for a in q.answers],
                )
                for q in questions
            ]
