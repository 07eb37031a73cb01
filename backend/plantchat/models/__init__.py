"""
Database models for the plantchat backend.

The models are organized by functionality:
- Participants (consumers and owners) and their read-receipt preference
- Plants, the subject of every conversation
- Conversations and messages
- Notifications created for incoming messages
"""

from .conversation import Conversation
from .message import Message
from .notification import Notification
from .participant import Consumer, Owner
from .plant import Plant

__all__ = [
    "Consumer",
    "Conversation",
    "Message",
    "Notification",
    "Owner",
    "Plant",
]
