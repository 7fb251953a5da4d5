"""
Message type constants for inbound events and outbound messages.
"""

# ---- Inbound (Infobip WhatsApp webhook `message.type`) ----
INBOUND_TEXT = "TEXT"
INBOUND_INTERACTIVE_BUTTON_REPLY = "INTERACTIVE_BUTTON_REPLY"

# ---- Outbound ----
OUTBOUND_TEXT = "text"
OUTBOUND_IMAGE = "image"
OUTBOUND_INTERACTIVE_BUTTONS = "interactive-buttons"

# Button type for interactive reply buttons
BUTTON_TYPE_REPLY = "REPLY"

# Provider limits for interactive buttons
MAX_BUTTONS = 3
BUTTON_TITLE_MAX_LENGTH = 20
