"""
Legacy single-document user data.

Before the chats/messages tables existed every user's chats lived in one JSON
document (``{"chats": [...], "customContacts": [...], "preferences": {...}}``).
Rows are only read by the migration.
"""

from sqlalchemy import JSON, Column, String

from .base import BaseModel


class LegacyUserData(BaseModel):
    """
    Represents the legacy app data document of one user.
    """

    __tablename__ = "legacy_user_data"

    user_id = Column(String(255), nullable=False, unique=True)
    data = Column(JSON, nullable=False, default=dict)
