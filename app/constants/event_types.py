"""
Event type constants for SystemEvent and ProcessedMessage.

Use these instead of string literals to ensure consistency.
"""

# ---- Inbound webhook ----
EVENT_INBOUND_DUPLICATE = "inbound.duplicate"
EVENT_INBOUND_EVENT_REJECTED = "inbound.event_rejected"
EVENT_INBOUND_WEBHOOK_FAILURE = "inbound.webhook_failure"

# ---- Contacts / answers ----
EVENT_CONTACT_NOT_FOUND = "contact.not_found_after_registration"

# ---- Outbound provider ----
EVENT_PROVIDER_SEND_FAILURE = "provider.send_failure"

# ---- Coupons ----
EVENT_COUPON_ASSIGNMENT_FAILURE = "coupon.assignment_failure"
EVENT_COUPON_POOL_EXHAUSTED = "coupon.pool_exhausted"
EVENT_COUPON_RUN_INTERRUPTED = "coupon.run_interrupted"
