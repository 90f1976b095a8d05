"""Sync request/response schemas."""

from __future__ import annotations

from pydantic import Field

from .base import BaseSchema, UTCDateTime
from .chat import Chat


class SyncChat(Chat):
    """A local chat pushed to the server. ``is_deleted`` marks a tombstone."""

    is_deleted: bool = False


class SyncRequest(BaseSchema):
    """Body of ``POST /sync``: the client's full local chat list."""

    local_chats: list[SyncChat] = Field(default_factory=list)
    last_sync_at: UTCDateTime | None = None


class SyncResponse(BaseSchema):
    """Server state after a pull or push, every chat carrying its messages."""

    chats: list[Chat]
    synced_at: UTCDateTime


__all__ = ["SyncChat", "SyncRequest", "SyncResponse"]
