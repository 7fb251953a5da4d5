"""
System event logging service.

Persists operator-visible events (webhook failures, provider failures, stranded
coupons) to the system_events table. All SystemEvent creation goes through
log_event (or info/warn/error) so payloads keep one shape.
"""

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.db.helpers import commit_and_refresh
from app.db.models import SystemEvent
from app.middleware.correlation_id import get_correlation_id

logger = logging.getLogger(__name__)

# Default retention: delete events older than this many days
DEFAULT_RETENTION_DAYS = 90


def log_event(
    db: Session,
    level: str,
    event_type: str,
    user_id: int | None = None,
    payload: dict | None = None,
    exc: BaseException | None = None,
    correlation_id: str | None = None,
) -> SystemEvent:
    """
    Log a system event to the database.

    Args:
        db: Database session
        level: Event level (INFO, WARN, ERROR)
        event_type: Type of event (see app.constants.event_types)
        user_id: Optional user the event concerns
        payload: Optional additional event data. Copied, never mutated.
        exc: Optional exception; its type and message are added to the payload.
        correlation_id: Optional request correlation ID (defaults to the current request's)

    Returns:
        Created SystemEvent object
    """
    normalized: dict = dict(payload) if payload else {}
    if exc is not None:
        normalized["error"] = {
            "type": type(exc).__name__,
            "message": str(exc)[:500],  # Truncate to avoid huge payloads
        }
    resolved_cid = correlation_id if correlation_id is not None else get_correlation_id()
    if resolved_cid is not None:
        normalized["correlation_id"] = resolved_cid

    event = SystemEvent(
        level=level.upper(),
        event_type=event_type,
        user_id=user_id,
        payload=normalized if normalized else None,
    )
    db.add(event)
    commit_and_refresh(db, event)
    return event


def info(db: Session, event_type: str, **kwargs) -> SystemEvent:
    return log_event(db, "INFO", event_type, **kwargs)


def warn(db: Session, event_type: str, **kwargs) -> SystemEvent:
    return log_event(db, "WARN", event_type, **kwargs)


def error(db: Session, event_type: str, **kwargs) -> SystemEvent:
    return log_event(db, "ERROR", event_type, **kwargs)


def record_event(session_factory: sessionmaker, level: str, event_type: str, **kwargs) -> None:
    """
    Best-effort event write in its own session, for callers that hold no session.

    A failing write is logged and dropped; it must never mask the error being reported.
    """
    try:
        with session_factory() as db:
            log_event(db, level, event_type, **kwargs)
    except SQLAlchemyError:
        logger.exception(f"Failed to persist system event {event_type}")


def cleanup_old_events(
    db: Session,
    *,
    retention_days: int = DEFAULT_RETENTION_DAYS,
    cutoff: datetime | None = None,
) -> int:
    """
    Delete SystemEvents older than retention_days (or before cutoff if provided).

    Returns:
        Number of rows deleted
    """
    if cutoff is None:
        cutoff = datetime.now(UTC) - timedelta(days=retention_days)
    if cutoff.tzinfo is None:
        cutoff = cutoff.replace(tzinfo=UTC)
    stmt = delete(SystemEvent).where(SystemEvent.created_at < cutoff)
    result = db.execute(stmt)
    db.commit()
    deleted = result.rowcount
    logger.info(f"SystemEvent retention: deleted {deleted} events older than {cutoff.isoformat()}")
    return deleted
