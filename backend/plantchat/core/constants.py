"""Application-wide constants for the plantchat backend."""

from __future__ import annotations

BRAND_NAME = "PlantMarket"

API_TITLE = f"{BRAND_NAME} Chat API"
API_DESCRIPTION = (
    f"Real-time conversations between plant owners and consumers on {BRAND_NAME}, "
    "with read-receipt privacy and admin observability"
)
API_VERSION = "1.0.0"

API_V1_PREFIX = "/api/v1"
WS_CHAT_PATH = "/ws/chat"

# WebSocket close codes (4000-4999 are reserved for applications)
WS_CLOSE_AUTH_FAILED = 4001

# Room prefixes used by the fan-out router
ROLE_ROOM_PREFIX = "type"
CONVERSATION_ROOM_PREFIX = "conversation"

# Notification record written for the counterpart of every new message
NEW_MESSAGE_NOTIFICATION_TYPE = "NEW_MESSAGE"
NEW_MESSAGE_NOTIFICATION_TITLE = "New Message"
NEW_MESSAGE_NOTIFICATION_BODY = "You have a new message"

VERIFICATION_STATUS_APPROVED = "APPROVED"
