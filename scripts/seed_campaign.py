"""
Seed the question catalogue and coupon pool from a JSON file.

File format:
    {
        "questions": [{"question": "...", "answers": ["A", "B", "C"]}],
        "coupons": ["CODE-1", "CODE-2"]
    }

Questions already present (by text) and coupons already present (by code) are
skipped, so the script can be rerun to add new questions or top up the pool.

Usage:
    python scripts/seed_campaign.py campaign.json
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from sqlalchemy import select
from sqlalchemy.orm import Session

import app.db.session as db_session
from app.db.models import Answer, Coupon, Question

logger = logging.getLogger(__name__)


def seed_questions(db: Session, questions: list[dict]) -> list[int]:
    existing = set(db.execute(select(Question.question)).scalars())
    created = []
    for item in questions:
        if item["question"] in existing:
            logger.info(f"Skipping existing question: {item['question']!r}")
            continue
        question = Question(question=item["question"])
        question.answers = [Answer(answer=text) for text in item.get("answers", [])]
        db.add(question)
        db.flush()
        existing.add(question.question)
        created.append(question.id)
    return created


def seed_coupons(db: Session, codes: list[str]) -> int:
    existing = set(db.execute(select(Coupon.coupon)).scalars())
    added = 0
    for code in codes:
        if code in existing:
            continue
        db.add(Coupon(coupon=code))
        existing.add(code)
        added += 1
    return added


def seed_campaign(db: Session, data: dict) -> dict:
    """Insert questions, answers and coupons in one transaction."""
    try:
        question_ids = seed_questions(db, data.get("questions", []))
        coupons_added = seed_coupons(db, data.get("coupons", []))
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info(f"Seeded questions={question_ids} coupons_added={coupons_added}")
    return {"question_ids": question_ids, "coupons_added": coupons_added}


def main():
    parser = argparse.ArgumentParser(description="Seed questions and coupons")
    parser.add_argument("path", type=Path, help="JSON file with questions and coupons")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    try:
        data = json.loads(args.path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        print(f"Cannot read {args.path}: {e}")
        sys.exit(1)

    with db_session.SessionLocal() as db:
        result = seed_campaign(db, data)
    print(f"Questions created: {result['question_ids']}")
    print(f"Coupons added: {result['coupons_added']}")


if __name__ == "__main__":
    main()
