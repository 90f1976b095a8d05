"""
Chat model for a user's conversation with one contact.
"""

from sqlalchemy import Column, DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from .base import BaseModel, utcnow
from .chat_message import ChatMessage


class Chat(BaseModel):
    """
    Represents one user's conversation with one contact.

    Contact display fields are denormalized copies taken when the chat is created.
    ``last_message``, ``last_message_at`` and ``message_count`` are derived from the
    message rows and rewritten by every message write.
    """

    __tablename__ = "chats"
    __table_args__ = (
        UniqueConstraint("user_id", "contact_id", name="uq_chats_user_contact"),
        Index("idx_chats_user_updated", "user_id", "updated_at"),
    )

    user_id = Column(String(255), nullable=False, index=True)
    contact_id = Column(String(255), nullable=False)
    contact_name = Column(String(255), nullable=False)
    contact_emoji = Column(String(32), nullable=False, default="")
    contact_image = Column(String(1024), nullable=True)
    contact_purpose = Column(Text, nullable=False, default="")

    last_message = Column(String(100), nullable=False, default="")
    last_message_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    message_count = Column(Integer, nullable=False, default=0)

    # Next per-chat message position; only ever grows so deletes never renumber
    next_position = Column(Integer, nullable=False, default=0)

    # Relationships
    messages = relationship(
        "ChatMessage",
        back_populates="chat",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by=lambda: [ChatMessage.created_at, ChatMessage.position],
    )
