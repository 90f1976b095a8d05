"""
Models package initialization.
"""

from .base import Base, BaseModel
from .chat import Chat
from .chat_message import ChatMessage, MessageRole
from .chat_migration import ChatMigration, MigrationStatus
from .legacy_user_data import LegacyUserData

__all__ = [
    "Base",
    "BaseModel",
    # Chat models
    "Chat",
    "ChatMessage",
    "MessageRole",
    # Migration models
    "ChatMigration",
    "MigrationStatus",
    "LegacyUserData",
]
