"""
Inbound webhook events.

An InboundEvent is either a CommentEvent (entry.changes, field "comments")
or a MessageEvent (entry.messaging). Events are never stored; they live for
one dispatch cycle.
"""

from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class CommentEvent:
    """New comment on a post owned by a connected account."""

    comment_id: str
    text: str
    platform_account_id: str  # entry.id - business or user ID, depending on the app
    media_id: Optional[str] = None
    author_username: Optional[str] = None
    author_id: Optional[str] = None

    kind = "comment"

    @property
    def event_id(self) -> str:
        return self.comment_id


@dataclass(frozen=True)
class MessageEvent:
    """Direct message sent to a connected account."""

    sender_id: str
    text: str
    platform_account_id: str
    message_id: Optional[str] = None  # message.mid

    kind = "message"

    @property
    def event_id(self) -> Optional[str]:
        return self.message_id


InboundEvent = Union[CommentEvent, MessageEvent]
