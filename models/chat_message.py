"""
Chat message model.
"""

import enum

from sqlalchemy import Column, Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from .base import BaseModel


class MessageRole(str, enum.Enum):
    """Message role enumeration."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ChatMessage(BaseModel):
    """
    Represents a message inside a chat.
    """

    __tablename__ = "chat_messages"
    __table_args__ = (
        Index("idx_chat_messages_chat_created", "chat_id", "created_at", "position"),
    )

    chat_id = Column(String(64), ForeignKey("chats.id", ondelete="CASCADE"), nullable=False)
    role = Column(
        Enum(MessageRole, values_callable=lambda roles: [r.value for r in roles], name="messagerole"),
        nullable=False,
    )
    content = Column(Text, nullable=False)
    audio_url = Column(String(1024), nullable=True)
    position = Column(Integer, nullable=False)

    # Relationships
    chat = relationship("Chat", back_populates="messages")
