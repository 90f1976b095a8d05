"""Relational chat repository backed by async SQLAlchemy."""

import logging
from collections import defaultdict
from datetime import datetime

from sqlalchemy import and_, delete, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.config import settings
from app.exceptions.chat import (
    ChatNotFoundError,
    InvalidCursorError,
    MessageNotFoundError,
)
from app.schemas.base import ensure_utc, utcnow
from app.schemas.chat import (
    Chat,
    ChatCreate,
    ChatUpdate,
    Message,
    MessageCreate,
    MessagePage,
    MessageUpdate,
    preview,
)
from app.schemas.sync import SyncChat
from models.chat import Chat as ChatModel
from models.chat_message import ChatMessage

from .base import ChatRepository, user_scoped

logger = logging.getLogger(__name__)

# Messages closer than this with equal content are treated as the same message
DUPLICATE_WINDOW_SECONDS = 1.0

NULLABLE_CHAT_FIELDS = {"contact_image"}


def clamp_limit(limit: int | None) -> int:
    """Clamp a requested page size into ``1..messages_max_limit``."""
    if limit is None:
        return settings.messages_default_limit
    return max(1, min(limit, settings.messages_max_limit))


class SQLAlchemyChatRepository(ChatRepository):
    """Chat repository over the ``chats`` and ``chat_messages`` tables.

    Relationships are never lazy-loaded; messages are always fetched with explicit
    queries ordered by ``(created_at, position)``.
    """

    def __init__(self, db: AsyncSession):
        """Initialize the repository with a database session.

        Args:
            db: Async database session for data operations.
        """
        self.db = db

    # ----- conversion -----

    @staticmethod
    def _message_from_row(row: ChatMessage) -> Message:
        return Message(
            id=row.id,
            chat_id=row.chat_id,
            role=row.role,
            content=row.content,
            audio_url=row.audio_url,
            created_at=row.created_at,
        )

    def _chat_from_row(self, row: ChatModel, messages: list[ChatMessage] | None = None) -> Chat:
        return Chat(
            id=row.id,
            contact_id=row.contact_id,
            contact_name=row.contact_name,
            contact_emoji=row.contact_emoji or "",
            contact_image=row.contact_image,
            contact_purpose=row.contact_purpose or "",
            last_message=row.last_message or "",
            last_message_at=row.last_message_at,
            message_count=row.message_count or 0,
            messages=[self._message_from_row(m) for m in messages or []],
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    # ----- row helpers -----

    async def _get_chat_row(self, user_id: str, chat_id: str) -> ChatModel | None:
        result = await self.db.execute(
            select(ChatModel).where(ChatModel.id == chat_id, ChatModel.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def _require_chat_row(self, user_id: str, chat_id: str) -> ChatModel:
        row = await self._get_chat_row(user_id, chat_id)
        if row is None:
            raise ChatNotFoundError(chat_id)
        return row

    async def _get_chat_row_by_contact(self, user_id: str, contact_id: str) -> ChatModel | None:
        result = await self.db.execute(
            select(ChatModel).where(
                ChatModel.user_id == user_id, ChatModel.contact_id == contact_id
            )
        )
        return result.scalar_one_or_none()

    async def _message_rows(self, chat_ids: list[str]) -> dict[str, list[ChatMessage]]:
        if not chat_ids:
            return {}
        result = await self.db.execute(
            select(ChatMessage)
            .where(ChatMessage.chat_id.in_(chat_ids))
            .order_by(ChatMessage.chat_id, ChatMessage.created_at, ChatMessage.position)
        )
        grouped: dict[str, list[ChatMessage]] = defaultdict(list)
        for row in result.scalars().all():
            grouped[row.chat_id].append(row)
        return grouped

    async def _get_message_row(self, chat_id: str, message_id: str) -> ChatMessage:
        result = await self.db.execute(
            select(ChatMessage).where(
                ChatMessage.id == message_id, ChatMessage.chat_id == chat_id
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise MessageNotFoundError(message_id)
        return row

    async def _tail_row(self, chat_id: str) -> ChatMessage | None:
        result = await self.db.execute(
            select(ChatMessage)
            .where(ChatMessage.chat_id == chat_id)
            .order_by(ChatMessage.created_at.desc(), ChatMessage.position.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _refresh_derived(self, chat: ChatModel) -> None:
        """Recompute last message fields and count from the stored tail."""
        await self.db.flush()
        count = await self.db.scalar(
            select(func.count()).select_from(ChatMessage).where(ChatMessage.chat_id == chat.id)
        )
        tail = await self._tail_row(chat.id)

        chat.message_count = count or 0
        if tail is not None:
            chat.last_message = preview(tail.content)
            chat.last_message_at = tail.created_at
        else:
            chat.last_message = ""
        chat.updated_at = utcnow()

    async def _insert_message(
        self, chat: ChatModel, data: MessageCreate, keep_timestamp: bool = False
    ) -> ChatMessage:
        created_at = data.created_at or utcnow()
        if not keep_timestamp:
            tail = await self._tail_row(chat.id)
            if tail is not None and created_at < ensure_utc(tail.created_at):
                created_at = ensure_utc(tail.created_at)

        position = chat.next_position or 0
        chat.next_position = position + 1

        row = ChatMessage(
            chat_id=chat.id,
            role=data.role,
            content=data.content,
            audio_url=data.audio_url,
            position=position,
            created_at=created_at,
            updated_at=created_at,
        )
        self.db.add(row)
        return row

    async def _delete_chat_rows(self, chat_id: str) -> None:
        await self.db.execute(delete(ChatMessage).where(ChatMessage.chat_id == chat_id))
        await self.db.execute(delete(ChatModel).where(ChatModel.id == chat_id))

    # ----- chats -----

    @user_scoped
    async def get_chats(
        self,
        user_id: str,
        since: datetime | None = None,
        include_messages: bool = False,
    ) -> list[Chat]:
        query = select(ChatModel).where(ChatModel.user_id == user_id)
        if since is not None:
            query = query.where(ChatModel.updated_at > ensure_utc(since))
        query = query.order_by(ChatModel.updated_at.desc())

        result = await self.db.execute(query)
        rows = result.scalars().all()

        messages = await self._message_rows([r.id for r in rows]) if include_messages else {}
        return [self._chat_from_row(row, messages.get(row.id)) for row in rows]

    @user_scoped
    async def get_chat(
        self, user_id: str, chat_id: str, include_messages: bool = False
    ) -> Chat | None:
        row = await self._get_chat_row(user_id, chat_id)
        if row is None:
            return None
        messages = (await self._message_rows([row.id])).get(row.id) if include_messages else None
        return self._chat_from_row(row, messages)

    @user_scoped
    async def get_chat_by_contact_id(self, user_id: str, contact_id: str) -> Chat | None:
        row = await self._get_chat_row_by_contact(user_id, contact_id)
        return self._chat_from_row(row) if row is not None else None

    @user_scoped
    async def create_chat(self, user_id: str, data: ChatCreate) -> tuple[Chat, bool]:
        existing = await self._get_chat_row_by_contact(user_id, data.contact_id)
        if existing is not None:
            return self._chat_from_row(existing), True

        now = utcnow()
        row = ChatModel(
            user_id=user_id,
            contact_id=data.contact_id,
            contact_name=data.contact_name,
            contact_emoji=data.contact_emoji,
            contact_image=data.contact_image,
            contact_purpose=data.contact_purpose,
            last_message="",
            last_message_at=now,
            message_count=0,
            next_position=0,
            created_at=now,
            updated_at=now,
        )
        self.db.add(row)
        try:
            await self.db.commit()
        except IntegrityError:
            # Lost a race against another create for the same contact
            await self.db.rollback()
            existing = await self._get_chat_row_by_contact(user_id, data.contact_id)
            if existing is None:
                raise
            logger.info(f"Chat for contact {data.contact_id} created concurrently, reusing it")
            return self._chat_from_row(existing), True

        await self.db.refresh(row)
        logger.info(f"Created chat {row.id} for user {user_id}")
        return self._chat_from_row(row), False

    @user_scoped
    async def update_chat(self, user_id: str, chat_id: str, data: ChatUpdate) -> Chat:
        row = await self._require_chat_row(user_id, chat_id)

        for field, value in data.model_dump(exclude_unset=True).items():
            if value is None and field not in NULLABLE_CHAT_FIELDS:
                continue
            setattr(row, field, value)
        row.updated_at = utcnow()

        await self.db.commit()
        await self.db.refresh(row)
        return self._chat_from_row(row)

    @user_scoped
    async def delete_chat(self, user_id: str, chat_id: str) -> bool:
        row = await self._get_chat_row(user_id, chat_id)
        if row is None:
            return False

        await self._delete_chat_rows(row.id)
        await self.db.commit()
        logger.info(f"Deleted chat {chat_id} for user {user_id}")
        return True

    # ----- messages -----

    @user_scoped
    async def get_messages(
        self,
        user_id: str,
        chat_id: str,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> MessagePage:
        await self._require_chat_row(user_id, chat_id)
        limit = clamp_limit(limit)

        query = select(ChatMessage).where(ChatMessage.chat_id == chat_id)
        if cursor:
            result = await self.db.execute(
                select(ChatMessage).where(
                    ChatMessage.id == cursor, ChatMessage.chat_id == chat_id
                )
            )
            anchor = result.scalar_one_or_none()
            if anchor is None:
                raise InvalidCursorError(cursor)
            query = query.where(
                or_(
                    ChatMessage.created_at > anchor.created_at,
                    and_(
                        ChatMessage.created_at == anchor.created_at,
                        ChatMessage.position > anchor.position,
                    ),
                )
            )

        # One extra row tells whether another page exists
        query = query.order_by(ChatMessage.created_at, ChatMessage.position).limit(limit + 1)
        result = await self.db.execute(query)
        rows = list(result.scalars().all())

        has_more = len(rows) > limit
        rows = rows[:limit]
        return MessagePage(
            messages=[self._message_from_row(r) for r in rows],
            has_more=has_more,
            next_cursor=rows[-1].id if has_more and rows else None,
        )

    @user_scoped
    async def add_message(self, user_id: str, chat_id: str, data: MessageCreate) -> Message:
        chat = await self._require_chat_row(user_id, chat_id)

        row = await self._insert_message(chat, data)
        await self._refresh_derived(chat)
        await self.db.commit()
        await self.db.refresh(row)
        return self._message_from_row(row)

    @user_scoped
    async def update_message(
        self, user_id: str, chat_id: str, message_id: str, data: MessageUpdate
    ) -> Message:
        chat = await self._require_chat_row(user_id, chat_id)
        row = await self._get_message_row(chat_id, message_id)

        for field, value in data.model_dump(exclude_unset=True).items():
            if value is None and field == "content":
                continue
            setattr(row, field, value)
        row.updated_at = utcnow()

        await self._refresh_derived(chat)
        await self.db.commit()
        await self.db.refresh(row)
        return self._message_from_row(row)

    @user_scoped
    async def delete_message(self, user_id: str, chat_id: str, message_id: str) -> bool:
        chat = await self._require_chat_row(user_id, chat_id)
        result = await self.db.execute(
            delete(ChatMessage).where(
                ChatMessage.id == message_id, ChatMessage.chat_id == chat_id
            )
        )
        if not result.rowcount:
            return False

        await self._refresh_derived(chat)
        await self.db.commit()
        return True

    # ----- sync -----

    @staticmethod
    def _is_duplicate(existing: list[ChatMessage], message: Message) -> bool:
        for row in existing:
            if row.id == message.id:
                return True
            delta = abs((ensure_utc(row.created_at) - message.created_at).total_seconds())
            if row.content == message.content and delta < DUPLICATE_WINDOW_SECONDS:
                return True
        return False

    @user_scoped
    async def sync_chats(self, user_id: str, local_chats: list[SyncChat]) -> list[Chat]:
        created = deleted = added = 0

        for local in local_chats:
            row = await self._get_chat_row_by_contact(user_id, local.contact_id)

            if local.is_deleted:
                if row is not None:
                    await self._delete_chat_rows(row.id)
                    deleted += 1
                continue

            if row is None:
                row = ChatModel(
                    user_id=user_id,
                    contact_id=local.contact_id,
                    contact_name=local.contact_name,
                    contact_emoji=local.contact_emoji,
                    contact_image=local.contact_image,
                    contact_purpose=local.contact_purpose,
                    last_message=preview(local.last_message),
                    last_message_at=local.last_message_at,
                    message_count=0,
                    next_position=0,
                    created_at=local.created_at,
                    updated_at=utcnow(),
                )
                self.db.add(row)
                await self.db.flush()
                created += 1

            existing = (await self._message_rows([row.id])).get(row.id, [])
            new_rows = []
            for message in local.messages:
                if not message.content:
                    continue
                if self._is_duplicate(existing, message):
                    continue
                new_row = await self._insert_message(
                    row, MessageCreate.from_message(message), keep_timestamp=True
                )
                existing.append(new_row)
                new_rows.append(new_row)

            if new_rows:
                await self._refresh_derived(row)
                added += len(new_rows)

        await self.db.commit()
        logger.info(
            f"Synced {len(local_chats)} local chats for user {user_id}: "
            f"{created} created, {deleted} deleted, {added} messages added"
        )
        return await self.get_chats(user_id, include_messages=True)
