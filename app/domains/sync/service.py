"""Full-state sync between a client and the chat store."""

import logging
from datetime import datetime

from app.repositories.base import ChatRepository
from app.schemas.base import utcnow
from app.schemas.sync import SyncRequest, SyncResponse

logger = logging.getLogger(__name__)


class SyncService:
    """Pull and push of a user's complete chat list."""

    def __init__(self, repository: ChatRepository):
        self.repository = repository

    async def pull(self, user_id: str, since: datetime | None = None) -> SyncResponse:
        """Return every chat (or those updated after ``since``) with messages."""
        synced_at = utcnow()
        chats = await self.repository.get_chats(user_id, since=since, include_messages=True)
        return SyncResponse(chats=chats, synced_at=synced_at)

    async def push(self, user_id: str, request: SyncRequest) -> SyncResponse:
        """Merge the client's local chats, then return the resulting server state.

        Chats are matched by contact. Tombstoned chats are deleted, new chats are
        created and messages missing on the server are appended.
        """
        logger.info(
            f"Sync push from user {user_id}: {len(request.local_chats)} chats, "
            f"last sync {request.last_sync_at}"
        )
        chats = await self.repository.sync_chats(user_id, request.local_chats)
        return SyncResponse(chats=chats, synced_at=utcnow())
