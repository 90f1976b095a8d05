"""Storage-agnostic chat repository contract.

Every operation takes the owning ``user_id`` as its first argument. A missing or
blank user scope is rejected before any I/O happens.
"""

import functools
from abc import ABC, abstractmethod
from datetime import datetime

from app.exceptions.chat import UserScopeRequiredError
from app.schemas.chat import (
    Chat,
    ChatCreate,
    ChatUpdate,
    Message,
    MessageCreate,
    MessagePage,
    MessageUpdate,
)
from app.schemas.migration import MigrationResult, MigrationStatusResponse
from app.schemas.sync import SyncChat


def require_user_scope(user_id: str | None, operation: str) -> str:
    """Return ``user_id`` or raise ``UserScopeRequiredError`` when it is blank."""
    if user_id is None or not str(user_id).strip():
        raise UserScopeRequiredError(operation)
    return user_id


def user_scoped(func):
    """Reject calls whose first argument after ``self`` is not a user id."""

    @functools.wraps(func)
    async def wrapper(self, user_id, *args, **kwargs):
        require_user_scope(user_id, func.__name__)
        return await func(self, user_id, *args, **kwargs)

    return wrapper


class ChatRepository(ABC):
    """Chat and message persistence for one backing store."""

    @abstractmethod
    async def get_chats(
        self,
        user_id: str,
        since: datetime | None = None,
        include_messages: bool = False,
    ) -> list[Chat]:
        """Return the user's chats, most recently updated first.

        Args:
            user_id: Owning user
            since: Only chats updated after this instant
            include_messages: Embed every chat's messages
        """

    @abstractmethod
    async def get_chat(
        self, user_id: str, chat_id: str, include_messages: bool = False
    ) -> Chat | None:
        """Return one chat or None when it does not exist for this user."""

    @abstractmethod
    async def get_chat_by_contact_id(self, user_id: str, contact_id: str) -> Chat | None:
        """Return the user's chat with ``contact_id`` or None."""

    @abstractmethod
    async def create_chat(self, user_id: str, data: ChatCreate) -> tuple[Chat, bool]:
        """Create the chat for a contact.

        Returns:
            The chat and whether it already existed. Creating a chat for a contact
            that already has one returns the existing chat.
        """

    @abstractmethod
    async def update_chat(self, user_id: str, chat_id: str, data: ChatUpdate) -> Chat:
        """Apply a partial update. Raises ``ChatNotFoundError``."""

    @abstractmethod
    async def delete_chat(self, user_id: str, chat_id: str) -> bool:
        """Delete a chat and its messages. Returns False when nothing was deleted."""

    @abstractmethod
    async def get_messages(
        self,
        user_id: str,
        chat_id: str,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> MessagePage:
        """Return one chronological page of messages after ``cursor``."""

    @abstractmethod
    async def add_message(self, user_id: str, chat_id: str, data: MessageCreate) -> Message:
        """Append a message and refresh the chat's derived fields."""

    @abstractmethod
    async def update_message(
        self, user_id: str, chat_id: str, message_id: str, data: MessageUpdate
    ) -> Message:
        """Apply a partial message update. Raises ``MessageNotFoundError``."""

    @abstractmethod
    async def delete_message(self, user_id: str, chat_id: str, message_id: str) -> bool:
        """Delete a message without renumbering the rest."""

    @abstractmethod
    async def sync_chats(self, user_id: str, local_chats: list[SyncChat]) -> list[Chat]:
        """Merge a client's local chats into the store.

        Returns every chat of the user with messages embedded.
        """

    async def close(self) -> None:
        """Release resources held by the repository."""
        return None


class MigrationRepository(ABC):
    """Legacy to current schema migration, one record per user."""

    @abstractmethod
    async def get_migration_status(self, user_id: str) -> MigrationStatusResponse:
        """Return the user's migration state, creating the record lazily."""

    @abstractmethod
    async def run_migration(self, user_id: str, retry: bool = False) -> MigrationResult:
        """Copy the user's legacy chats into the current schema."""
