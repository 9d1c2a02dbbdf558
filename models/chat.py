from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from models.base import ApiModel


class ChatMessage(ApiModel):
    # Messages built locally before the server echo have no id yet.
    id: Optional[int] = None
    session_id: Optional[int] = None
    type: str = "text"
    content: str
    sender_id: int
    receiver_id: Optional[int] = None
    created_at: datetime

    @property
    def is_pending(self) -> bool:
        return self.id is None

    def identity(self) -> tuple:
        """
        Key used to merge the same message arriving from REST and from a push.
        """
        if self.id is not None:
            return ("id", self.id)
        return ("local", self.sender_id, self.content, self.created_at)


class ChatSession(ApiModel):
    """A pairing of two users that owns an ordered message history."""
    id: int
    sender_id: Optional[int] = None
    receiver_id: Optional[int] = None
    messages: list[ChatMessage] = Field(default_factory=list, alias="message")
    created_at: Optional[datetime] = None

    @property
    def last_message(self) -> Optional[ChatMessage]:
        return self.messages[-1] if self.messages else None

    @property
    def last_activity(self) -> Optional[datetime]:
        if self.messages:
            return self.messages[-1].created_at
        return self.created_at

    def counterpart_of(self, user_id: int) -> Optional[int]:
        return self.receiver_id if self.sender_id == user_id else self.sender_id


class SessionPreview(ApiModel):
    """Payload of a sessionUpdated push."""
    session_id: int
    preview: ChatMessage


class IncomingMessage(ApiModel):
    """Payload of a newMessage / chatMessage push."""
    session_id: int
    message: ChatMessage
