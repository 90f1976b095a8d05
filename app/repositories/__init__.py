"""Chat repositories: the interface, its stores and the caching decorator."""

from .base import ChatRepository, MigrationRepository, require_user_scope, user_scoped
from .cached import CachedChatRepository
from .http_repository import HttpChatRepository
from .sqlalchemy_repository import SQLAlchemyChatRepository

__all__ = [
    "ChatRepository",
    "MigrationRepository",
    "require_user_scope",
    "user_scoped",
    "CachedChatRepository",
    "HttpChatRepository",
    "SQLAlchemyChatRepository",
]
