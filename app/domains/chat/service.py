"""Chat service layer over the chat repository."""

import logging
from datetime import datetime

from app.exceptions.chat import ChatNotFoundError, MessageNotFoundError
from app.repositories.base import ChatRepository
from app.schemas.base import utcnow
from app.schemas.chat import (
    Chat,
    ChatCreate,
    ChatCreateResponse,
    ChatListResponse,
    ChatUpdate,
    Message,
    MessageCreate,
    MessagePage,
    MessageUpdate,
)
from app.shared.pagination import CursorParams

logger = logging.getLogger(__name__)


class ChatService:
    """Service class for chat and message operations of one user."""

    def __init__(self, repository: ChatRepository):
        """Initialize chat service with a repository.

        Args:
            repository: Chat repository, usually the cached SQL repository.
        """
        self.repository = repository

    async def list_chats(
        self,
        user_id: str,
        since: datetime | None = None,
        include_messages: bool = False,
    ) -> ChatListResponse:
        """List the user's chats, optionally only those updated after ``since``."""
        synced_at = utcnow()
        chats = await self.repository.get_chats(
            user_id, since=since, include_messages=include_messages
        )
        return ChatListResponse(chats=chats, synced_at=synced_at)

    async def create_chat(self, user_id: str, data: ChatCreate) -> ChatCreateResponse:
        """Create the chat for a contact or return the one that already exists."""
        chat, is_existing = await self.repository.create_chat(user_id, data)
        if is_existing:
            logger.info(f"Chat for contact {data.contact_id} already exists: {chat.id}")
        return ChatCreateResponse(chat=chat, is_existing=is_existing)

    async def get_chat(self, user_id: str, chat_id: str, include_messages: bool = False) -> Chat:
        chat = await self.repository.get_chat(user_id, chat_id, include_messages=include_messages)
        if chat is None:
            raise ChatNotFoundError(chat_id)
        return chat

    async def update_chat(self, user_id: str, chat_id: str, data: ChatUpdate) -> Chat:
        return await self.repository.update_chat(user_id, chat_id, data)

    async def delete_chat(self, user_id: str, chat_id: str) -> None:
        if not await self.repository.delete_chat(user_id, chat_id):
            raise ChatNotFoundError(chat_id)

    async def get_messages(self, user_id: str, chat_id: str, params: CursorParams) -> MessagePage:
        return await self.repository.get_messages(
            user_id, chat_id, limit=params.limit, cursor=params.cursor
        )

    async def add_message(self, user_id: str, chat_id: str, data: MessageCreate) -> Message:
        return await self.repository.add_message(user_id, chat_id, data)

    async def update_message(
        self, user_id: str, chat_id: str, message_id: str, data: MessageUpdate
    ) -> Message:
        return await self.repository.update_message(user_id, chat_id, message_id, data)

    async def delete_message(self, user_id: str, chat_id: str, message_id: str) -> None:
        if not await self.repository.delete_message(user_id, chat_id, message_id):
            raise MessageNotFoundError(message_id)
