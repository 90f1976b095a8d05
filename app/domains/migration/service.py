"""Legacy chat data migration service.

Before the ``chats`` and ``chat_messages`` tables existed every user's chats lived
in one JSON document. Migration copies that document into the current schema once
per user and records its progress in ``chat_migrations``.
"""

import logging
from datetime import timedelta

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.config import settings
from app.exceptions.chat import MigrationFailedError, MigrationInProgressError
from app.repositories.base import ChatRepository, MigrationRepository, user_scoped
from app.schemas.base import ensure_utc, utcnow
from app.schemas.chat import ChatCreate, MessageCreate
from app.schemas.migration import LegacyChat, MigrationResult, MigrationStatusResponse
from models.chat_migration import ChatMigration, MigrationStatus
from models.legacy_user_data import LegacyUserData

logger = logging.getLogger(__name__)


class MigrationService(MigrationRepository):
    """Drives the per-user migration state machine.

    ``not_started -> in_progress -> completed | completed_with_errors | failed``.
    ``completed`` is absorbing. The two other terminal states are only left through
    an explicit retry, which resumes by skipping contacts that already have a chat.
    """

    def __init__(self, db: AsyncSession, repository: ChatRepository):
        """Initialize migration service.

        Args:
            db: Async database session holding migration records and legacy data.
            repository: Chat repository the migrated chats are written through.
        """
        self.db = db
        self.repository = repository

    async def _get_record(self, user_id: str) -> ChatMigration | None:
        result = await self.db.execute(select(ChatMigration).where(ChatMigration.user_id == user_id))
        return result.scalar_one_or_none()

    async def _get_or_create_record(self, user_id: str) -> ChatMigration:
        record = await self._get_record(user_id)
        if record is not None:
            return record

        record = ChatMigration(
            user_id=user_id,
            status=MigrationStatus.NOT_STARTED,
            migrated_chats=0,
            migrated_messages=0,
        )
        self.db.add(record)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            record = await self._get_record(user_id)
            if record is None:
                raise
            return record

        await self.db.refresh(record)
        return record

    async def _claim(self, record: ChatMigration, current: MigrationStatus) -> ChatMigration:
        """Move ``record`` to in_progress if nobody else changed it meanwhile."""
        if current != MigrationStatus.IN_PROGRESS and not current.can_transition_to(
            MigrationStatus.IN_PROGRESS
        ):
            raise MigrationFailedError(f"Cannot restart migration from {current.value}")

        result = await self.db.execute(
            update(ChatMigration)
            .where(ChatMigration.id == record.id, ChatMigration.status == current)
            .values(status=MigrationStatus.IN_PROGRESS, started_at=utcnow(), updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        if not result.rowcount:
            raise MigrationInProgressError()

        await self.db.refresh(record)
        return record

    @staticmethod
    def _is_stale(record: ChatMigration) -> bool:
        if record.started_at is None:
            return True
        age = utcnow() - ensure_utc(record.started_at)
        return age > timedelta(seconds=settings.migration_stale_after_seconds)

    async def _finish(
        self,
        user_id: str,
        status: MigrationStatus,
        migrated_chats: int,
        migrated_messages: int,
        errors: list[str] | None = None,
        last_error: str | None = None,
    ) -> ChatMigration:
        # Migrated chats commit one by one, so re-read the record in a clean state
        await self.db.rollback()
        record = await self._get_record(user_id)

        record.status = status
        record.migrated_chats = (record.migrated_chats or 0) + migrated_chats
        record.migrated_messages = (record.migrated_messages or 0) + migrated_messages
        record.errors = errors or None
        record.last_error = last_error
        record.completed_at = utcnow()
        await self.db.commit()
        await self.db.refresh(record)
        return record

    @user_scoped
    async def get_migration_status(self, user_id: str) -> MigrationStatusResponse:
        record = await self._get_or_create_record(user_id)
        status = MigrationStatus(record.status)
        return MigrationStatusResponse(
            status=status,
            needs_migration=status.needs_migration,
            migrated_chats=record.migrated_chats or 0,
            migrated_messages=record.migrated_messages or 0,
            completed_at=ensure_utc(record.completed_at) if record.completed_at else None,
            errors=record.errors or None,
        )

    @user_scoped
    async def run_migration(self, user_id: str, retry: bool = False) -> MigrationResult:
        record = await self._get_or_create_record(user_id)
        status = MigrationStatus(record.status)

        if status == MigrationStatus.COMPLETED:
            return MigrationResult(
                success=True,
                status=status,
                migrated_chats=record.migrated_chats or 0,
                migrated_messages=record.migrated_messages or 0,
                already_migrated=True,
                message="Migration already completed",
            )

        if status == MigrationStatus.IN_PROGRESS and not self._is_stale(record):
            raise MigrationInProgressError()

        if status in (MigrationStatus.COMPLETED_WITH_ERRORS, MigrationStatus.FAILED) and not retry:
            return MigrationResult(
                success=status == MigrationStatus.COMPLETED_WITH_ERRORS,
                status=status,
                migrated_chats=record.migrated_chats or 0,
                migrated_messages=record.migrated_messages or 0,
                message=f"Migration finished as {status.value}; pass retry=true to resume",
                errors=record.errors or None,
            )

        if status == MigrationStatus.IN_PROGRESS:
            logger.warning(f"Taking over stale migration for user {user_id}")
        await self._claim(record, status)
        logger.info(f"Migration started for user {user_id} (retry={retry})")

        try:
            return await self._migrate(user_id)
        except MigrationFailedError:
            raise
        except Exception as e:
            logger.error(f"Migration failed for user {user_id}: {str(e)}")
            await self._finish(user_id, MigrationStatus.FAILED, 0, 0, last_error=str(e))
            raise MigrationFailedError(
                f"Migration failed: {str(e)}", details={"user_id": user_id}
            ) from e

    async def _migrate(self, user_id: str) -> MigrationResult:
        result = await self.db.execute(
            select(LegacyUserData).where(LegacyUserData.user_id == user_id)
        )
        legacy = result.scalar_one_or_none()

        if legacy is None:
            record = await self._finish(user_id, MigrationStatus.COMPLETED, 0, 0)
            logger.info(f"No legacy data for user {user_id}")
            return MigrationResult(
                success=True,
                status=MigrationStatus(record.status),
                migrated_chats=0,
                migrated_messages=0,
                message="No legacy data found",
            )

        raw_chats = (legacy.data or {}).get("chats") or []
        migrated_chats = migrated_messages = 0
        errors: list[str] = []

        for index, raw in enumerate(raw_chats):
            label = raw.get("contactId") if isinstance(raw, dict) else None
            label = label or f"#{index}"
            try:
                chat = LegacyChat.model_validate(raw)
                messages = await self._migrate_chat(user_id, chat)
            except (PydanticValidationError, SQLAlchemyError) as e:
                await self.db.rollback()
                errors.append(f"{label}: {str(e).splitlines()[0]}")
                logger.warning(f"Failed to migrate chat {label} for user {user_id}: {str(e)}")
                continue

            if messages is not None:
                migrated_chats += 1
                migrated_messages += messages

        status = (
            MigrationStatus.COMPLETED_WITH_ERRORS if errors else MigrationStatus.COMPLETED
        )
        await self._finish(user_id, status, migrated_chats, migrated_messages, errors)
        logger.info(
            f"Migration for user {user_id} finished as {status.value}: "
            f"{migrated_chats} chats, {migrated_messages} messages, {len(errors)} errors"
        )
        return MigrationResult(
            success=True,
            status=status,
            migrated_chats=migrated_chats,
            migrated_messages=migrated_messages,
            errors=errors or None,
        )

    async def _migrate_chat(self, user_id: str, legacy: LegacyChat) -> int | None:
        """Copy one legacy chat. Returns the message count, or None if it was skipped."""
        existing = await self.repository.get_chat_by_contact_id(user_id, legacy.contact_id)
        if existing is not None:
            return None

        chat, is_existing = await self.repository.create_chat(
            user_id,
            ChatCreate(
                contact_id=legacy.contact_id,
                contact_name=legacy.contact_name,
                contact_emoji=legacy.contact_emoji,
                contact_image=legacy.contact_image,
                contact_purpose=legacy.contact_purpose,
            ),
        )
        if is_existing:
            return None

        count = 0
        for message in legacy.messages:
            await self.repository.add_message(
                user_id,
                chat.id,
                MessageCreate(
                    role=message.role,
                    content=message.content,
                    audio_url=message.audio_url,
                    created_at=message.created_at,
                ),
            )
            count += 1
        return count
