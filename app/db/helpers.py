"""Database session helpers."""

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

# Dialects whose INSERT supports ON CONFLICT ... RETURNING
_CONFLICT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def commit_and_refresh(db: Session, *instances) -> None:
    """
    Commit the transaction and refresh each given instance.
    """
    db.commit()
    for obj in instances:
        if obj is not None:
            db.refresh(obj)


def conflict_insert(db: Session, model):
    """
    Return a dialect-specific INSERT for model supporting on_conflict_do_nothing / do_update.

    Insert-or-ignore and upserts must be one atomic statement, so only dialects with
    ON CONFLICT support are accepted.
    """
    dialect = db.get_bind().dialect.name
    try:
        factory = _CONFLICT_INSERTS[dialect]
    except KeyError:
        raise NotImplementedError(
            f"Dialect '{dialect}' has no ON CONFLICT support; use PostgreSQL or SQLite"
        ) from None
    return factory(model)
