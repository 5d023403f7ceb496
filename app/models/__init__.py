"""
Kindred — ORM model registry.

Importing every model here ensures that Alembic (and any other tool that
inspects ``Base.metadata``) discovers all tables automatically.
"""

from app.models.user import User
from app.models.match import Match, PinnedMatch, Swipe
from app.models.chat import Chat, Message, MessageRead

__all__ = [
    "User",
    "Swipe",
    "Match",
    "PinnedMatch",
    "Chat",
    "Message",
    "MessageRead",
]
