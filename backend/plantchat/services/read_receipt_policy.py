# backend/plantchat/services/read_receipt_policy.py
"""
Read-receipt privacy rules.

read_receipts_enabled means "allow others to see when I've read their
messages", so the flag that matters is always the reader's. These rules only
decide what a sender is shown; they never affect delivery, notifications or
what is stored.
"""

from datetime import datetime
from typing import Optional

from ..core.enums import IdentityType
from ..domain import MessageRecord


def read_event_visible_to_sender(reader_read_receipts_enabled: bool) -> bool:
    """Whether a read event may be pushed to the message's sender."""
    return bool(reader_read_receipts_enabled)


def visible_read_at(
    message: MessageRecord,
    viewer_type: IdentityType,
    counterpart_read_receipts_enabled: bool,
) -> Optional[datetime]:
    """
    The read_at the viewer may see for a message.

    For a message the viewer sent, the counterpart is the reader and their
    preference applies. For a message the viewer received, read_at is the
    viewer's own action and is always shown.
    """
    if message.sender_type is viewer_type and not counterpart_read_receipts_enabled:
        return None
    return message.read_at
