"""FastAPI database dependencies."""

from collections.abc import Iterator

from sqlalchemy.orm import Session, sessionmaker

import app.db.session as db_session


def get_db() -> Iterator[Session]:
    db = db_session.SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> sessionmaker:
    """
    Session factory handed to the stores (one short session per store operation).

    Resolved at call time so tests can swap app.db.session.SessionLocal.
    """
    return db_session.SessionLocal
