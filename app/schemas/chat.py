"""Chat schemas for request/response serialization and client state."""

from __future__ import annotations

from pydantic import Field, field_validator

from app.core.config import settings
from models.chat_message import MessageRole

from .base import BaseSchema, UTCDateTime, utcnow


def preview(content: str) -> str:
    """Return the ``lastMessage`` preview for a message body."""
    return content[: settings.last_message_max_length]


class Message(BaseSchema):
    """A single chat message."""

    id: str
    chat_id: str | None = Field(None, description="Back-reference to the owning chat")
    role: MessageRole
    content: str
    audio_url: str | None = None
    created_at: UTCDateTime = Field(default_factory=utcnow)


class Chat(BaseSchema):
    """A conversation with one contact, optionally carrying its messages.

    ``last_message``, ``last_message_at`` and ``message_count`` are derived from
    ``messages``; any code that changes the message list calls ``refresh_derived``.
    """

    id: str
    contact_id: str
    contact_name: str
    contact_emoji: str = ""
    contact_image: str | None = None
    contact_purpose: str = ""
    last_message: str = ""
    last_message_at: UTCDateTime = Field(default_factory=utcnow)
    message_count: int = 0
    messages: list[Message] = Field(default_factory=list)
    created_at: UTCDateTime = Field(default_factory=utcnow)
    updated_at: UTCDateTime = Field(default_factory=utcnow)

    def append_message(self, message: Message) -> Message:
        """Append a message keeping chronological order and derived fields."""
        if self.messages and message.created_at < self.messages[-1].created_at:
            # Never let an append move time backwards inside the chat
            message = message.model_copy(update={"created_at": self.messages[-1].created_at})
        if message.chat_id != self.id:
            message = message.model_copy(update={"chat_id": self.id})
        self.messages.append(message)
        self.refresh_derived()
        return message

    def refresh_derived(self) -> None:
        """Recompute last message fields and count from the message tail."""
        self.message_count = len(self.messages)
        if self.messages:
            tail = self.messages[-1]
            self.last_message = preview(tail.content)
            self.last_message_at = tail.created_at
        else:
            self.last_message = ""
        self.updated_at = utcnow()

    def find_message(self, message_id: str) -> Message | None:
        return next((m for m in self.messages if m.id == message_id), None)

    def without_messages(self) -> Chat:
        return self.model_copy(update={"messages": []})


class Contact(BaseSchema):
    """The persona a chat is held with, as the UI knows it."""

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    avatar_emoji: str = ""
    avatar_image: str | None = None
    purpose: str = ""


class ChatCreate(BaseSchema):
    """Schema for creating a chat."""

    contact_id: str = Field(..., min_length=1, max_length=255)
    contact_name: str = Field(..., min_length=1, max_length=255)
    contact_emoji: str = Field(default="", max_length=32)
    contact_image: str | None = Field(None, max_length=1024)
    contact_purpose: str = ""

    @classmethod
    def from_contact(cls, contact: Contact) -> ChatCreate:
        return cls(
            contact_id=contact.id,
            contact_name=contact.name,
            contact_emoji=contact.avatar_emoji,
            contact_image=contact.avatar_image,
            contact_purpose=contact.purpose,
        )

    @classmethod
    def from_chat(cls, chat: Chat) -> ChatCreate:
        return cls(
            contact_id=chat.contact_id,
            contact_name=chat.contact_name,
            contact_emoji=chat.contact_emoji,
            contact_image=chat.contact_image,
            contact_purpose=chat.contact_purpose,
        )


class ChatUpdate(BaseSchema):
    """Partial chat update. Only fields explicitly set are written."""

    contact_name: str | None = Field(None, min_length=1, max_length=255)
    contact_emoji: str | None = Field(None, max_length=32)
    contact_image: str | None = Field(None, max_length=1024)
    contact_purpose: str | None = None
    last_message: str | None = None
    last_message_at: UTCDateTime | None = None

    @field_validator("last_message")
    @classmethod
    def truncate_last_message(cls, v):
        return preview(v) if v is not None else v


class MessageCreate(BaseSchema):
    """Schema for appending a message.

    ``created_at`` is only honoured for sync and migration, where the original
    timestamp of an offline message must survive.
    """

    role: MessageRole
    content: str = Field(..., min_length=1, max_length=settings.max_message_length)
    audio_url: str | None = Field(None, max_length=1024)
    created_at: UTCDateTime | None = None

    @classmethod
    def from_message(cls, message: Message) -> MessageCreate:
        return cls(
            role=message.role,
            content=message.content,
            audio_url=message.audio_url,
            created_at=message.created_at,
        )


class MessageUpdate(BaseSchema):
    """Partial message update."""

    content: str | None = Field(None, min_length=1, max_length=settings.max_message_length)
    audio_url: str | None = Field(None, max_length=1024)


class MessagePage(BaseSchema):
    """One page of a chat's messages in chronological order."""

    messages: list[Message]
    has_more: bool
    next_cursor: str | None = None


class ChatListResponse(BaseSchema):
    chats: list[Chat]
    synced_at: UTCDateTime


class ChatCreateResponse(BaseSchema):
    chat: Chat
    is_existing: bool


class ChatDetailResponse(BaseSchema):
    chat: Chat


class MessageResponse(BaseSchema):
    message: Message


__all__ = [
    "MessageRole",
    "Message",
    "Chat",
    "Contact",
    "ChatCreate",
    "ChatUpdate",
    "MessageCreate",
    "MessageUpdate",
    "MessagePage",
    "ChatListResponse",
    "ChatCreateResponse",
    "ChatDetailResponse",
    "MessageResponse",
    "preview",
]
