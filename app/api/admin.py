import logging

from fastapi import APIRouter, Depends, Security
from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from app.api.auth import get_admin_auth
from app.api.dependencies import get_coupon_allocator
from app.db.deps import get_db
from app.db.models import SystemEvent
from app.services.coupons import CouponAllocator
from app.services.system_event_service import cleanup_old_events

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/coupons/stats")
def coupon_pool_stats(
    allocator: CouponAllocator = Depends(get_coupon_allocator),
    _auth: bool = Security(get_admin_auth),
):
    """Coupon pool counts: total, available, claimed, assigned, stranded."""
    return allocator.pool_stats()


@router.get("/coupons/stranded")
def list_stranded_coupons(
    allocator: CouponAllocator = Depends(get_coupon_allocator),
    _auth: bool = Security(get_admin_auth),
):
    """
    Coupons claimed by an allocation run but never assigned to a contact.

    These are never returned to the pool automatically; an operator decides.
    """
    return [{"id": c.id, "coupon": c.code} for c in allocator.list_stranded()]


@router.get("/events")
def list_system_events(
    level: str | None = None,
    limit: int = 50,
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
):
    """
    List recent system events.
    Query params: level (INFO, WARN, ERROR), limit (default 50).
    """
    stmt = select(SystemEvent).order_by(desc(SystemEvent.id))
    if level:
        stmt = stmt.where(SystemEvent.level == level.upper())
    stmt = stmt.limit(max(0, min(limit, 200)))  # Clamp to [0, 200]
    rows = db.execute(stmt).scalars().all()
    return [
        {
            "id": r.id,
            "level": r.level,
            "event_type": r.event_type,
            "user_id": r.user_id,
            "payload": r.payload,
            "created_at": r.created_at.isoformat() if r.created_at else None,
        }
        for r in rows
    ]


@router.post("/events/retention-cleanup")
def cleanup_system_events_retention(
    retention_days: int = 90,
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
):
    """Delete system events older than retention_days."""
    deleted = cleanup_old_events(db, retention_days=retention_days)
    return {"deleted": deleted, "retention_days": retention_days}
