"""Schemas for the legacy chat data migration."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from models.chat_migration import MigrationStatus

from .base import BaseSchema, UTCDateTime
from .chat import MessageRole


class LegacyMessage(BaseSchema):
    """A message as it was embedded in the legacy user document."""

    id: str | None = None
    role: MessageRole
    content: str
    audio_url: str | None = None
    created_at: UTCDateTime | None = None


class LegacyChat(BaseSchema):
    """A chat as it was embedded in the legacy user document."""

    id: str | None = None
    contact_id: str
    contact_name: str
    contact_emoji: str = ""
    contact_image: str | None = None
    contact_purpose: str = ""
    last_message: str = ""
    last_message_at: UTCDateTime | None = None
    messages: list[LegacyMessage] = Field(default_factory=list)


class MigrationStatusResponse(BaseSchema):
    """Body of ``GET /migrate``."""

    status: MigrationStatus
    needs_migration: bool
    migrated_chats: int = 0
    migrated_messages: int = 0
    completed_at: datetime | None = None
    errors: list[str] | None = None


class MigrationResult(BaseSchema):
    """Body of ``POST /migrate``."""

    success: bool
    status: MigrationStatus
    migrated_chats: int = 0
    migrated_messages: int = 0
    already_migrated: bool = False
    message: str | None = None
    errors: list[str] | None = None


__all__ = [
    "LegacyMessage",
    "LegacyChat",
    "MigrationStatusResponse",
    "MigrationResult",
]
