"""
Coupon allocator.

Claiming and assignment are conditional updates (claim-if-unclaimed,
assign-if-claimed-and-unassigned), never read-then-write, so concurrent callers can
not receive or assign the same coupon twice. A coupon that was claimed but could not
be assigned stays claimed: it is reported as stranded, never returned to the pool.
"""

import logging
import time
from dataclasses import dataclass

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, aliased, sessionmaker

from app.constants.event_types import EVENT_COUPON_ASSIGNMENT_FAILURE
from app.core.errors import CouponAssignmentError, CouponClaimContention
from app.db.models import Coupon
from app.services.system_event_service import record_event

logger = logging.getLogger(__name__)

# Claim attempts that lose a race before giving up on this call
MAX_CLAIM_ATTEMPTS = 10
# Linear backoff between attempts, in seconds
CLAIM_RETRY_BACKOFF_SECONDS = 0.02


@dataclass(frozen=True)
class ClaimedCoupon:
    id: int
    code: str


class CouponAllocator:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def allocate_next(self) -> ClaimedCoupon | None:
        """
        Atomically claim one unclaimed coupon.

        Returns:
            The claimed coupon, or None when no unclaimed coupon remains.

        Raises:
            CouponClaimContention: unclaimed coupons remain but stayed locked by other
                claimers for every attempt.
        """
        remaining = 0
        for attempt in range(1, MAX_CLAIM_ATTEMPTS + 1):
            with self._session_factory() as db:
                try:
                    row = self._claim_one(db)
                    db.commit()
                except SQLAlchemyError:
                    db.rollback()
                    raise

                if row is not None:
                    logger.info(f"coupon.claimed coupon_id={row.id}")
                    return ClaimedCoupon(id=row.id, code=row.coupon)

                # Lost a race (or every free row is locked): retry only while unclaimed rows remain
                remaining = self._unclaimed_count(db)
            if remaining == 0:
                logger.info("coupon.pool_exhausted")
                return None
            time.sleep(CLAIM_RETRY_BACKOFF_SECONDS * attempt)

        logger.warning(
            f"coupon.claim_contention gave up after {MAX_CLAIM_ATTEMPTS} attempts "
            f"remaining={remaining}"
        )
        raise CouponClaimContention(MAX_CLAIM_ATTEMPTS, remaining)

    def _claim_one(self, db: Session):
        # Aliased so the subquery is not correlated to the UPDATE target
        free = aliased(Coupon)
        next_free = (
            select(free.id)
            .where(free.claimed_at.is_(None))
            .order_by(free.id)
            .limit(1)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )
        stmt = (
            update(Coupon)
            .where(Coupon.id == next_free)
            .where(Coupon.claimed_at.is_(None))
            .values(claimed_at=func.now())
            .returning(Coupon.id, Coupon.coupon)
        )
        return db.execute(stmt).first()

    @staticmethod
    def _unclaimed_count(db: Session) -> int:
        return db.execute(
            select(func.count()).select_from(Coupon).where(Coupon.claimed_at.is_(None))
        ).scalar_one()

    def assign_to(self, coupon_id: int, user_id: int) -> None:
        """
        Link a claimed coupon to its contact. Assignment is final.

        Raises:
            CouponAssignmentError: the coupon is not claimed, already assigned, the
                contact already holds a coupon, or the write failed. The coupon stays
                claimed-but-unassigned and an ERROR system event is recorded.
        """
        detail = None
        with self._session_factory() as db:
            try:
                result = db.execute(
                    update(Coupon)
                    .where(Coupon.id == coupon_id)
                    .where(Coupon.claimed_at.is_not(None))
                    .where(Coupon.user_id.is_(None))
                    .values(user_id=user_id, assigned_at=func.now())
                )
                if result.rowcount == 1:
                    db.commit()
                    logger.info(f"coupon.assigned coupon_id={coupon_id} user_id={user_id}")
                    return
                db.rollback()
                detail = "coupon not claimed or already assigned"
            except IntegrityError as e:
                db.rollback()
                detail = f"contact already holds a coupon ({type(e).__name__})"
            except SQLAlchemyError as e:
                db.rollback()
                detail = f"{type(e).__name__}: {e}"

        logger.error(
            f"coupon.assignment_failure coupon_id={coupon_id} user_id={user_id}: {detail}"
        )
        record_event(
            self._session_factory,
            "ERROR",
            EVENT_COUPON_ASSIGNMENT_FAILURE,
            user_id=user_id,
            payload={"coupon_id": coupon_id, "detail": detail},
        )
        raise CouponAssignmentError([coupon_id], detail)

    def coupon_for_user(self, user_id: int) -> ClaimedCoupon | None:
        with self._session_factory() as db:
            row = db.execute(
                select(Coupon.id, Coupon.coupon).where(Coupon.user_id == user_id)
            ).first()
        return ClaimedCoupon(id=row.id, code=row.coupon) if row else None

    def assigned_user_ids(self) -> set[int]:
        with self._session_factory() as db:
            return set(
                db.execute(select(Coupon.user_id).where(Coupon.user_id.is_not(None))).scalars()
            )

    def list_stranded(self) -> list[ClaimedCoupon]:
        """Coupons claimed but never assigned - need operator attention."""
        with self._session_factory() as db:
            rows = db.execute(
                select(Coupon.id, Coupon.coupon)
                .where(Coupon.claimed_at.is_not(None))
                .where(Coupon.user_id.is_(None))
                .order_by(Coupon.id)
            ).all()
        return [ClaimedCoupon(id=row.id, code=row.coupon) for row in rows]

    def pool_stats(self) -> dict:
        with self._session_factory() as db:
            total = db.execute(select(func.count()).select_from(Coupon)).scalar_one()
            available = self._unclaimed_count(db)
            assigned = db.execute(
                select(func.count()).select_from(Coupon).where(Coupon.user_id.is_not(None))
            ).scalar_one()
        claimed = total - available
        return {
            "total": total,
            "available": available,
            "claimed": claimed,
            "assigned": assigned,
            "stranded": claimed - assigned,
        }
