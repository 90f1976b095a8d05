"""
Per-user record of the legacy to current chat schema migration.
"""

import enum

from sqlalchemy import JSON, Column, DateTime, Enum, Integer, String, Text

from .base import BaseModel


class MigrationStatus(str, enum.Enum):
    """Migration states. ``completed`` is absorbing."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def needs_migration(self) -> bool:
        return self not in (MigrationStatus.COMPLETED, MigrationStatus.COMPLETED_WITH_ERRORS)

    def can_transition_to(self, target: "MigrationStatus") -> bool:
        return target in ALLOWED_TRANSITIONS[self]


TERMINAL_STATUSES = frozenset(
    {
        MigrationStatus.COMPLETED,
        MigrationStatus.COMPLETED_WITH_ERRORS,
        MigrationStatus.FAILED,
    }
)

# Retrying re-enters in_progress from a non-clean terminal state; completed has no exits.
ALLOWED_TRANSITIONS = {
    MigrationStatus.NOT_STARTED: frozenset({MigrationStatus.IN_PROGRESS}),
    MigrationStatus.IN_PROGRESS: TERMINAL_STATUSES,
    MigrationStatus.COMPLETED: frozenset(),
    MigrationStatus.COMPLETED_WITH_ERRORS: frozenset({MigrationStatus.IN_PROGRESS}),
    MigrationStatus.FAILED: frozenset({MigrationStatus.IN_PROGRESS}),
}


class ChatMigration(BaseModel):
    """
    Represents the migration state for one user. Created lazily, never deleted.
    """

    __tablename__ = "chat_migrations"

    user_id = Column(String(255), nullable=False, unique=True)
    status = Column(
        Enum(
            MigrationStatus,
            values_callable=lambda states: [s.value for s in states],
            name="migrationstatus",
        ),
        nullable=False,
        default=MigrationStatus.NOT_STARTED,
    )
    migrated_chats = Column(Integer, nullable=False, default=0)
    migrated_messages = Column(Integer, nullable=False, default=0)
    errors = Column(JSON, nullable=True)
    last_error = Column(Text, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
