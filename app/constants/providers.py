"""
Provider constants for ProcessedMessage and outbound delivery results.

Use these instead of string literals to avoid drift and typos.
"""

PROVIDER_INFOBIP = "infobip"
