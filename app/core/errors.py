"""
Domain exceptions for the campaign core.

Validation errors reject a single inbound event; provider errors are logged and
swallowed by callers; coupon assignment and claim errors are fatal for an allocation
run. Coupon pool exhaustion is not an exception (allocate_next returns None), and lock
contention is never reported as exhaustion.
"""


class CampaignError(Exception):
    """Base class for all campaign errors."""


class EventValidationError(CampaignError):
    """An inbound event or admin request references invalid data."""


class InvalidPhone(EventValidationError):
    def __init__(self, phone: object):
        super().__init__(f"Invalid phone identifier: {phone!r}")
        self.phone = phone


class MalformedAnswerId(EventValidationError):
    def __init__(self, raw_id: object):
        super().__init__(f"Button reply id is not a valid answer id: {raw_id!r}")
        self.raw_id = raw_id


class UnknownAnswer(EventValidationError):
    def __init__(self, answer_id: int):
        super().__init__(f"Answer {answer_id} does not exist")
        self.answer_id = answer_id


class UnknownQuestion(EventValidationError):
    def __init__(self, question_id: int):
        super().__init__(f"Question {question_id} does not exist")
        self.question_id = question_id


class ContactNotFound(CampaignError):
    def __init__(self, phone: str):
        super().__init__(f"No contact registered for phone {phone}")
        self.phone = phone


class ProviderError(CampaignError):
    """Outbound send, mark-as-read or realtime publish failed."""

    def __init__(self, operation: str, detail: str, status_code: int | None = None):
        super().__init__(f"{operation} failed: {detail}")
        self.operation = operation
        self.detail = detail
        self.status_code = status_code


class CouponAssignmentError(CampaignError):
    """
    A claimed coupon could not be linked to its contact.

    The coupon stays claimed-but-unassigned; it is never released back to the pool.
    """

    def __init__(self, coupon_ids: list[int], detail: str):
        super().__init__(f"Coupons claimed but not assigned {coupon_ids}: {detail}")
        self.coupon_ids = coupon_ids
        self.detail = detail


class CouponClaimContention(CampaignError):
    """Unclaimed coupons remain but every claim attempt found them locked."""

    def __init__(self, attempts: int, remaining: int):
        super().__init__(
            f"Gave up claiming a coupon after {attempts} attempts with {remaining} still unclaimed"
        )
        self.attempts = attempts
        self.remaining = remaining


class CouponRunInterrupted(CampaignError):
    """
    Claiming failed partway through a coupon run.

    Coupons claimed before the failure were still delivered and assigned; any that
    could not be assigned are listed in stranded_coupon_ids.
    """

    def __init__(self, cause: BaseException, assigned: int, stranded_coupon_ids: list[int]):
        super().__init__(
            f"Coupon run interrupted after {assigned} assignments: {type(cause).__name__}: {cause}"
        )
        self.cause = cause
        self.assigned = assigned
        self.stranded_coupon_ids = stranded_coupon_ids


def error_summary(exc: BaseException) -> dict:
    """Shape an exception for webhook/admin response bodies."""
    return {"type": type(exc).__name__, "message": str(exc)[:500]}
