# app/core/dependencies.py
import logging

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.cache import RedisCache
from app.core.security import TokenVerifier
from app.database import get_db
from app.domains.chat.service import ChatService
from app.domains.migration.service import MigrationService
from app.domains.sync.service import SyncService
from app.repositories.base import ChatRepository
from app.repositories.cached import CachedChatRepository
from app.repositories.sqlalchemy_repository import SQLAlchemyChatRepository

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)
auth = TokenVerifier()

__all__ = [
    "get_db",
    "validate_token",
    "get_current_user_id",
    "get_cache",
    "get_chat_repository",
    "get_chat_service",
    "get_sync_service",
    "get_migration_service",
]


async def validate_token(
    token: HTTPAuthorizationCredentials | None = Depends(security),
) -> dict:
    """Validate and decode the bearer token.

    Returns:
        dict: Decoded token payload

    Raises:
        HTTPException: If token is missing or invalid
    """
    try:
        if not token or not token.credentials:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Authentication token is required",
                headers={"WWW-Authenticate": "Bearer"},
            )

        payload = auth.verify_token(token.credentials)

        if not payload:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid authentication token",
                headers={"WWW-Authenticate": "Bearer"},
            )

        return payload

    except HTTPException:
        raise
    except Exception as e:
        logger.error("Token validation error: %s", str(e))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication failed",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


async def get_current_user_id(
    request: Request,
    payload: dict = Depends(validate_token),
) -> str:
    """Return the id of the authenticated user from the token payload.

    Raises:
        HTTPException: If the payload carries no user id
    """
    user_id = payload.get("sub") or payload.get("uid")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload - missing user ID",
        )

    # Add user info to request state for logging
    request.state.user_id = user_id
    return str(user_id)


def get_cache(request: Request) -> RedisCache:
    """Return the process-wide cache created at startup, or a disabled one."""
    cache = getattr(request.app.state, "cache", None)
    return cache if cache is not None else RedisCache(None)


async def get_chat_repository(
    db: AsyncSession = Depends(get_db),
    cache: RedisCache = Depends(get_cache),
) -> ChatRepository:
    return CachedChatRepository(SQLAlchemyChatRepository(db), cache)


async def get_chat_service(
    repository: ChatRepository = Depends(get_chat_repository),
) -> ChatService:
    return ChatService(repository)


async def get_sync_service(
    repository: ChatRepository = Depends(get_chat_repository),
) -> SyncService:
    return SyncService(repository)


async def get_migration_service(
    db: AsyncSession = Depends(get_db),
    repository: ChatRepository = Depends(get_chat_repository),
) -> MigrationService:
    return MigrationService(db, repository)
