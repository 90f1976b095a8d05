"""Entry point for UI callers of the chat core."""

import logging
from collections.abc import Awaitable, Callable

from app.exceptions.chat import ChatNotFoundError
from app.schemas.base import utcnow
from app.schemas.chat import Chat, Contact, Message, MessageRole, MessageUpdate
from app.schemas.migration import MigrationResult
from models.chat_migration import MigrationStatus

from .coordinator import SyncCoordinator
from .store import ChatStore, new_message_id

logger = logging.getLogger(__name__)

# Produces the assistant reply for a user message, or None for no reply
Responder = Callable[[Chat, Message], Awaitable[str | None]]


class ChatFacade:
    """Wires the local store to the sync coordinator.

    The facade owns no state of its own. Callers read ``store.chats`` and
    ``store.active_chat`` and subscribe to the store for changes.
    """

    def __init__(
        self,
        store: ChatStore,
        coordinator: SyncCoordinator,
        responder: Responder | None = None,
        auto_migrate: bool = True,
    ):
        self.store = store
        self.coordinator = coordinator
        self.responder = responder
        self.auto_migrate = auto_migrate

    @property
    def chats(self) -> list[Chat]:
        return self.store.chats

    @property
    def active_chat(self) -> Chat | None:
        return self.store.active_chat

    async def load(self) -> list[Chat]:
        """Load chats and, for a user never migrated, migrate once and reload."""
        await self.store.load_chats()
        if self.auto_migrate and self.coordinator.migration_status == MigrationStatus.NOT_STARTED:
            logger.info(f"Starting legacy migration for user {self.store.user_id}")
            await self.run_migration()
        return self.store.chats

    async def run_migration(self, retry: bool = False) -> MigrationResult | None:
        result = await self.coordinator.run_migration(self.store.user_id, retry=retry)
        if result is not None and result.migrated_chats:
            await self.store.load_chats()
        return result

    def start_chat(self, contact: Contact) -> Chat:
        return self.store.start_chat(contact)

    def select_chat(self, chat_id: str | None) -> None:
        self.store.set_active_chat(chat_id)

    def _message(self, chat_id: str, role: MessageRole, content: str, audio_url: str | None) -> Message:
        return Message(
            id=new_message_id(),
            chat_id=chat_id,
            role=role,
            content=content,
            audio_url=audio_url,
            created_at=utcnow(),
        )

    async def send_message(
        self, chat_id: str, content: str, audio_url: str | None = None
    ) -> tuple[Message, Message | None]:
        """Append a user message and, with a responder, the assistant's reply.

        Raises:
            ChatNotFoundError: If the chat is not in the store
        """
        chat = self.store.get_chat(chat_id)
        if chat is None:
            raise ChatNotFoundError(chat_id)

        user_message = self.store.add_message(
            chat.id, self._message(chat.id, MessageRole.USER, content, audio_url)
        )
        if self.responder is None:
            return user_message, None

        reply = await self.responder(chat, user_message)
        if not reply:
            return user_message, None
        # The chat may have received its server id while the responder ran
        return user_message, self.add_assistant_message(chat_id, reply)

    def add_assistant_message(
        self, chat_id: str, content: str, audio_url: str | None = None
    ) -> Message | None:
        chat = self.store.get_chat(chat_id)
        if chat is None:
            logger.warning(f"Dropping assistant message for missing chat {chat_id}")
            return None
        return self.store.add_message(
            chat.id, self._message(chat.id, MessageRole.ASSISTANT, content, audio_url)
        )

    def edit_message(
        self, chat_id: str, message_id: str, content: str | None = None, audio_url: str | None = None
    ) -> Message | None:
        updates = {}
        if content is not None:
            updates["content"] = content
        if audio_url is not None:
            updates["audio_url"] = audio_url
        return self.store.update_message(chat_id, message_id, MessageUpdate(**updates))

    def delete_chat(self, chat_id: str) -> bool:
        return self.store.delete_chat(chat_id)

    async def sync_now(self) -> list[Chat] | None:
        return await self.store.push_now()

    async def refresh(self) -> None:
        await self.store.sync_with_server()

    async def close(self) -> None:
        """Wait for background work, send any debounced push and release the client."""
        await self.store.drain()
        await self.coordinator.close()
