"""Sync coordinator: moves local chat state to and from a chat repository.

Every remote call is best effort. Failures are logged and reported as ``None`` or
``False``; the local state stays the user-visible truth until the next trigger.
"""

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from app.core.config import settings
from app.repositories.base import ChatRepository, MigrationRepository
from app.schemas.base import utcnow
from app.schemas.chat import Chat, ChatCreate, Message, MessageCreate, MessageUpdate
from app.schemas.migration import MigrationResult, MigrationStatusResponse
from app.schemas.sync import SyncChat
from models.chat_migration import MigrationStatus

from .debounce import DebouncedTask
from .storage import LocalStorage

logger = logging.getLogger(__name__)

PushListener = Callable[[str, list[Chat]], None]

# (user_id, server chat id, server message id) -> merged edit
PendingEdits = dict[tuple[str, str, str], MessageUpdate]


class SyncCoordinator:
    """Push, pull and migration tracking for the signed-in user."""

    def __init__(
        self,
        repository: ChatRepository,
        storage: LocalStorage,
        migrations: MigrationRepository | None = None,
        debounce_seconds: float | None = None,
    ):
        """Initialize the coordinator.

        Args:
            repository: Remote chat repository, usually ``HttpChatRepository``
            storage: Device storage, used for tombstones of failed deletions
            migrations: Migration endpoint; without it migration is never checked
            debounce_seconds: Push debounce window, defaults to settings
        """
        self.repository = repository
        self.storage = storage
        self.migrations = migrations
        self.migration_status: MigrationStatus | None = None
        self.needs_migration = False
        self.last_sync_at: datetime | None = None
        self._in_flight = 0
        self._push_listeners: list[PushListener] = []
        delay = settings.sync_debounce_seconds if debounce_seconds is None else debounce_seconds
        self._push = DebouncedTask(self._debounced_push, delay, name="sync push")
        self._edits = DebouncedTask(self._send_message_updates, delay, name="message edits")

    @property
    def is_syncing(self) -> bool:
        return self._in_flight > 0

    @property
    def push_pending(self) -> bool:
        return self._push.is_pending

    @property
    def edits_pending(self) -> bool:
        return self._edits.is_pending

    def add_push_listener(self, listener: PushListener) -> None:
        """Register a callback run with the server state after every successful push."""
        self._push_listeners.append(listener)

    async def _guard(self, operation: str, call: Awaitable[Any]) -> Any | None:
        self._in_flight += 1
        try:
            return await call
        except Exception as e:
            logger.warning(f"{operation} failed, keeping local state: {str(e)}")
            return None
        finally:
            self._in_flight -= 1

    # ----- tombstones -----

    def tombstones(self, user_id: str) -> list[SyncChat]:
        return self.storage.load_tombstones(user_id)

    def tombstoned_contacts(self, user_id: str) -> set[str]:
        return {t.contact_id for t in self.tombstones(user_id)}

    def record_tombstone(self, user_id: str, chat: Chat) -> None:
        """Remember a deletion the server has not confirmed yet."""
        tombstones = [t for t in self.tombstones(user_id) if t.contact_id != chat.contact_id]
        tombstone = SyncChat.model_validate(
            {**chat.without_messages().model_dump(), "is_deleted": True}
        )
        tombstones.append(tombstone)
        self.storage.save_tombstones(user_id, tombstones)
        logger.info(f"Recorded tombstone for chat {chat.id} ({chat.contact_id})")

    def forget_tombstone(self, user_id: str, contact_id: str) -> None:
        tombstones = self.tombstones(user_id)
        remaining = [t for t in tombstones if t.contact_id != contact_id]
        if len(remaining) != len(tombstones):
            self.storage.save_tombstones(user_id, remaining)

    # ----- push / pull -----

    @staticmethod
    def to_sync_chats(chats: list[Chat]) -> list[SyncChat]:
        """Snapshot chats for a push so later local edits do not leak into it."""
        return [SyncChat.model_validate(chat.model_dump()) for chat in chats]

    async def push(self, user_id: str | None, chats: list[Chat]) -> list[Chat] | None:
        """Push the full local chat list plus pending tombstones right away."""
        if not user_id:
            return None

        tombstones = self.tombstones(user_id)
        payload = [*tombstones, *self.to_sync_chats(chats)]
        server_chats = await self._guard(
            "Sync push", self.repository.sync_chats(user_id, payload)
        )
        if server_chats is None:
            return None

        pushed = {t.contact_id for t in tombstones}
        if pushed:
            remaining = [t for t in self.tombstones(user_id) if t.contact_id not in pushed]
            self.storage.save_tombstones(user_id, remaining)

        self.last_sync_at = utcnow()
        logger.info(f"Pushed {len(chats)} chats and {len(tombstones)} deletions for user {user_id}")
        for listener in self._push_listeners:
            listener(user_id, server_chats)
        return server_chats

    async def _debounced_push(self, payload: tuple[str, list[Chat]]) -> None:
        user_id, chats = payload
        await self.push(user_id, chats)

    def schedule_push(self, user_id: str | None, chats: list[Chat]) -> None:
        """Push after the debounce window; a newer call replaces this payload."""
        if not user_id:
            return
        self._push.schedule((user_id, [chat.model_copy(deep=True) for chat in chats]))

    def refresh_pending_push(self, user_id: str | None, chats: list[Chat]) -> None:
        """Replace the payload of a scheduled push without restarting its timer."""
        if user_id and self._push.is_pending:
            self._push.replace((user_id, [chat.model_copy(deep=True) for chat in chats]))

    def cancel_pending_push(self) -> None:
        self._push.cancel()

    async def pull(self, user_id: str | None, since: datetime | None = None) -> list[Chat] | None:
        """Fetch chats with messages. Returns None when the fetch failed."""
        if not user_id:
            return None
        chats = await self._guard(
            "Sync pull",
            self.repository.get_chats(user_id, since=since, include_messages=True),
        )
        if chats is not None:
            self.last_sync_at = utcnow()
        return chats

    # ----- immediate forwards -----

    async def create_chat(self, user_id: str | None, chat: Chat) -> Chat | None:
        if not user_id:
            return None
        result = await self._guard(
            f"Create chat for {chat.contact_id}",
            self.repository.create_chat(user_id, ChatCreate.from_chat(chat)),
        )
        if result is None:
            return None
        server_chat, _ = result
        return server_chat

    async def add_message(
        self, user_id: str | None, chat_id: str, message: Message
    ) -> Message | None:
        if not user_id:
            return None
        return await self._guard(
            f"Add message to {chat_id}",
            self.repository.add_message(user_id, chat_id, MessageCreate.from_message(message)),
        )

    def schedule_message_update(
        self, user_id: str | None, chat_id: str, message_id: str, update: MessageUpdate
    ) -> None:
        """Send an edit of a server message after the debounce window.

        Edits to the same message inside the window merge into one request;
        ``sync_chats`` only appends, so edits never travel through a push.
        """
        if not user_id:
            return
        edits: PendingEdits = dict(self._edits.pending or {})
        key = (user_id, chat_id, message_id)
        if key in edits:
            update = MessageUpdate(
                **{**edits[key].model_dump(exclude_unset=True), **update.model_dump(exclude_unset=True)}
            )
        edits[key] = update
        self._edits.schedule(edits)

    async def _send_message_updates(self, edits: PendingEdits) -> None:
        for (user_id, chat_id, message_id), update in edits.items():
            result = await self._guard(
                f"Update message {message_id}",
                self.repository.update_message(user_id, chat_id, message_id, update),
            )
            if result is not None:
                logger.info(f"Updated message {message_id} in chat {chat_id}")

    async def delete_chat(self, user_id: str | None, chat_id: str | None, chat: Chat) -> bool:
        """Delete remotely; on failure leave a tombstone for the next push."""
        if not user_id:
            return False
        deleted = None
        if chat_id is not None:
            deleted = await self._guard(
                f"Delete chat {chat_id}", self.repository.delete_chat(user_id, chat_id)
            )
        if deleted is None:
            self.record_tombstone(user_id, chat)
            return False
        return True

    # ----- migration -----

    async def check_migration(self, user_id: str | None) -> MigrationStatusResponse | None:
        if not user_id or self.migrations is None:
            return None
        status = await self._guard(
            "Migration status check", self.migrations.get_migration_status(user_id)
        )
        if status is not None:
            self.migration_status = status.status
            self.needs_migration = status.needs_migration
        return status

    async def run_migration(self, user_id: str | None, retry: bool = False) -> MigrationResult | None:
        if not user_id or self.migrations is None:
            return None
        self.migration_status = MigrationStatus.IN_PROGRESS
        result = await self._guard("Migration", self.migrations.run_migration(user_id, retry=retry))
        if result is None:
            # Unknown outcome; the next status check tells what the server recorded
            self.migration_status = None
            return None

        self.migration_status = result.status
        self.needs_migration = result.status.needs_migration
        return result

    # ----- lifecycle -----

    async def flush(self) -> None:
        """Send scheduled edits and a scheduled push now and wait for them."""
        await self._edits.flush()
        await self._push.flush()

    async def close(self) -> None:
        await self.flush()
        await self.repository.close()
