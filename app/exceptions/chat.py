# ruff: noqa: D107
"""Chat, sync and migration exceptions."""

from typing import Any

from .base import BaseAppException, NotFoundError


class ChatNotFoundError(NotFoundError):
    """Exception raised when a chat does not exist in the caller's scope."""

    def __init__(
        self,
        chat_id: str | None = None,
        message: str = "Chat not found",
        details: dict[str, Any] | None = None,
    ):
        if chat_id is not None:
            details = {**(details or {}), "chat_id": chat_id}
        super().__init__(message=message, details=details)


class MessageNotFoundError(NotFoundError):
    """Exception raised when a message does not exist in the chat."""

    def __init__(
        self,
        message_id: str | None = None,
        message: str = "Message not found",
        details: dict[str, Any] | None = None,
    ):
        if message_id is not None:
            details = {**(details or {}), "message_id": message_id}
        super().__init__(message=message, details=details)


class UserScopeRequiredError(BaseAppException):
    """Exception raised when an entity operation is called without its owning user."""

    def __init__(
        self,
        operation: str,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            message=f"{operation} requires a user_id",
            status_code=400,
            error_code="USER_SCOPE_REQUIRED",
            details={**(details or {}), "operation": operation},
        )


class InvalidCursorError(BaseAppException):
    """Exception raised when a pagination cursor does not name a message in the chat."""

    def __init__(
        self,
        cursor: str,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            message="Invalid pagination cursor",
            status_code=400,
            error_code="INVALID_CURSOR",
            details={**(details or {}), "cursor": cursor},
        )


class MigrationInProgressError(BaseAppException):
    """Exception raised when a migration is already running for the user."""

    def __init__(
        self,
        message: str = "Migration already in progress",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            message=message,
            status_code=409,
            error_code="MIGRATION_IN_PROGRESS",
            details=details,
        )


class MigrationFailedError(BaseAppException):
    """Exception raised when a migration aborts and is recorded as failed."""

    def __init__(
        self,
        message: str = "Migration failed",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            message=message,
            status_code=500,
            error_code="MIGRATION_FAILED",
            details=details,
        )


class RemoteSyncError(BaseAppException):
    """Exception raised by the HTTP repository when the remote API call fails."""

    def __init__(
        self,
        message: str = "Remote chat API request failed",
        status_code: int = 502,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            message=message,
            status_code=status_code,
            error_code="REMOTE_SYNC_ERROR",
            details=details,
        )


class RateLimitExceededError(BaseAppException):
    """Exception raised when a user has used up an endpoint's request budget."""

    def __init__(
        self,
        limit: int,
        retry_after: int,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            message="Too many requests. Please try again later.",
            status_code=429,
            error_code="RATE_LIMITED",
            details={**(details or {}), "limit": limit, "retry_after": retry_after},
        )
        self.headers = {
            "Retry-After": str(retry_after),
            "X-RateLimit-Limit": str(limit),
            "X-RateLimit-Remaining": "0",
        }
