"""Read-through, write-invalidate caching decorator for chat repositories."""

import logging
from datetime import datetime

from app.cache import CacheKeys, CacheTTL, RedisCache
from app.schemas.chat import (
    Chat,
    ChatCreate,
    ChatUpdate,
    Message,
    MessageCreate,
    MessagePage,
    MessageUpdate,
)
from app.schemas.sync import SyncChat

from .base import ChatRepository, user_scoped

logger = logging.getLogger(__name__)


class CachedChatRepository(ChatRepository):
    """Wraps another repository with the same interface.

    Reads are served from the cache when possible and populated on miss. Writes go
    to the inner repository first and only invalidate after it succeeded. Entity
    entries carry the owning user id; an entry owned by someone else is a miss.
    Message pages and ``since`` queries are never cached.
    """

    def __init__(self, inner: ChatRepository, cache: RedisCache, ttl: int = CacheTTL.MEDIUM):
        """Initialize the decorator.

        Args:
            inner: Repository that owns the data
            cache: Cache client; a disabled cache makes this a pass-through
            ttl: Time to live for chat entries
        """
        self.inner = inner
        self.cache = cache
        self.ttl = ttl

    async def _invalidate(self, user_id: str, *chat_ids: str) -> None:
        keys = [
            CacheKeys.chats_list(user_id),
            CacheKeys.chats_list(user_id, with_messages=True),
            *(CacheKeys.chat(chat_id) for chat_id in chat_ids if chat_id),
        ]
        await self.cache.delete(*keys)

    # ----- reads -----

    @user_scoped
    async def get_chats(
        self,
        user_id: str,
        since: datetime | None = None,
        include_messages: bool = False,
    ) -> list[Chat]:
        if since is not None:
            return await self.inner.get_chats(user_id, since=since, include_messages=include_messages)

        key = CacheKeys.chats_list(user_id, with_messages=include_messages)
        cached = await self.cache.get(key)
        if isinstance(cached, list):
            try:
                return [Chat.model_validate(item) for item in cached]
            except ValueError as e:
                logger.warning(f"Discarding unreadable cache entry {key}: {str(e)}")

        chats = await self.inner.get_chats(user_id, include_messages=include_messages)
        await self.cache.set(key, [chat.to_wire() for chat in chats], self.ttl)
        return chats

    @user_scoped
    async def get_chat(
        self, user_id: str, chat_id: str, include_messages: bool = False
    ) -> Chat | None:
        if include_messages:
            return await self.inner.get_chat(user_id, chat_id, include_messages=True)

        key = CacheKeys.chat(chat_id)
        cached = await self.cache.get(key)
        if isinstance(cached, dict) and cached.get("userId") == user_id:
            try:
                return Chat.model_validate(cached["chat"])
            except (KeyError, ValueError) as e:
                logger.warning(f"Discarding unreadable cache entry {key}: {str(e)}")

        chat = await self.inner.get_chat(user_id, chat_id)
        if chat is not None:
            await self.cache.set(key, {"userId": user_id, "chat": chat.to_wire()}, self.ttl)
        return chat

    @user_scoped
    async def get_chat_by_contact_id(self, user_id: str, contact_id: str) -> Chat | None:
        return await self.inner.get_chat_by_contact_id(user_id, contact_id)

    @user_scoped
    async def get_messages(
        self,
        user_id: str,
        chat_id: str,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> MessagePage:
        return await self.inner.get_messages(user_id, chat_id, limit=limit, cursor=cursor)

    # ----- writes -----

    @user_scoped
    async def create_chat(self, user_id: str, data: ChatCreate) -> tuple[Chat, bool]:
        chat, is_existing = await self.inner.create_chat(user_id, data)
        if not is_existing:
            await self._invalidate(user_id, chat.id)
        return chat, is_existing

    @user_scoped
    async def update_chat(self, user_id: str, chat_id: str, data: ChatUpdate) -> Chat:
        chat = await self.inner.update_chat(user_id, chat_id, data)
        await self._invalidate(user_id, chat_id)
        return chat

    @user_scoped
    async def delete_chat(self, user_id: str, chat_id: str) -> bool:
        deleted = await self.inner.delete_chat(user_id, chat_id)
        if deleted:
            await self._invalidate(user_id, chat_id)
        return deleted

    @user_scoped
    async def add_message(self, user_id: str, chat_id: str, data: MessageCreate) -> Message:
        message = await self.inner.add_message(user_id, chat_id, data)
        await self._invalidate(user_id, chat_id)
        return message

    @user_scoped
    async def update_message(
        self, user_id: str, chat_id: str, message_id: str, data: MessageUpdate
    ) -> Message:
        message = await self.inner.update_message(user_id, chat_id, message_id, data)
        await self._invalidate(user_id, chat_id)
        return message

    @user_scoped
    async def delete_message(self, user_id: str, chat_id: str, message_id: str) -> bool:
        deleted = await self.inner.delete_message(user_id, chat_id, message_id)
        if deleted:
            await self._invalidate(user_id, chat_id)
        return deleted

    @user_scoped
    async def sync_chats(self, user_id: str, local_chats: list[SyncChat]) -> list[Chat]:
        chats = await self.inner.sync_chats(user_id, local_chats)
        # Deleted chats are no longer in the result, so clear the pushed ids too
        pushed_ids = [chat.id for chat in local_chats]
        await self._invalidate(user_id, *[chat.id for chat in chats], *pushed_ids)
        return chats
