"""Client-side repository over the chat REST API."""

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

import httpx

from app.core.config import Settings, settings as app_settings
from app.exceptions.chat import (
    ChatNotFoundError,
    InvalidCursorError,
    MessageNotFoundError,
    MigrationInProgressError,
    RateLimitExceededError,
    RemoteSyncError,
)
from app.schemas.chat import (
    Chat,
    ChatCreate,
    ChatCreateResponse,
    ChatDetailResponse,
    ChatListResponse,
    ChatUpdate,
    Message,
    MessageCreate,
    MessagePage,
    MessageResponse,
    MessageUpdate,
)
from app.schemas.migration import MigrationResult, MigrationStatusResponse
from app.schemas.sync import SyncChat, SyncRequest, SyncResponse

from .base import ChatRepository, MigrationRepository, user_scoped

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Awaitable[str | None]]


class HttpChatRepository(ChatRepository, MigrationRepository):
    """Talks to ``/api/v2`` with a bearer token.

    The server derives the user from the token; ``user_id`` is still required on
    every call so a caller can never issue a request without a user scope.
    Transport failures and unexpected status codes raise ``RemoteSyncError``.
    """

    def __init__(self, client: httpx.AsyncClient, token_provider: TokenProvider):
        """Initialize the repository.

        Args:
            client: HTTP client whose ``base_url`` points at the API prefix
            token_provider: Coroutine returning the current bearer token
        """
        self.client = client
        self.token_provider = token_provider

    @classmethod
    def from_settings(
        cls, token_provider: TokenProvider, settings: Settings = app_settings
    ) -> "HttpChatRepository":
        client = httpx.AsyncClient(
            base_url=settings.api_base_url.rstrip("/"),
            timeout=settings.api_timeout,
        )
        return cls(client, token_provider)

    async def close(self) -> None:
        await self.client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        allow_not_found: bool = False,
        **kwargs: Any,
    ) -> httpx.Response | None:
        headers = dict(kwargs.pop("headers", None) or {})
        token = await self.token_provider()
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = await self.client.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"{method} {path} failed: {str(e)}")
            raise RemoteSyncError(
                f"Request to {path} failed: {str(e)}", details={"path": path}
            ) from e

        if response.status_code == 404 and allow_not_found:
            return None
        if response.is_error:
            self._raise_for_status(method, path, response)
        return response

    @staticmethod
    def _raise_for_status(method: str, path: str, response: httpx.Response) -> None:
        try:
            body = response.json()
        except ValueError:
            body = {"message": response.text}

        details = body.get("details") if isinstance(body, dict) else None
        error_code = body.get("error_code") if isinstance(body, dict) else None
        message = body.get("message") if isinstance(body, dict) else None

        if error_code == "INVALID_CURSOR":
            raise InvalidCursorError((details or {}).get("cursor", ""))
        if error_code == "MIGRATION_IN_PROGRESS":
            raise MigrationInProgressError(message or "Migration already in progress")
        if error_code == "RATE_LIMITED":
            details = details or {}
            raise RateLimitExceededError(
                limit=details.get("limit", 0), retry_after=details.get("retry_after", 0)
            )
        if response.status_code == 404 and "/messages/" in path:
            raise MessageNotFoundError(message=message or "Message not found")
        if response.status_code == 404:
            raise ChatNotFoundError(message=message or "Chat not found")

        logger.warning(f"{method} {path} returned {response.status_code}")
        raise RemoteSyncError(
            message or f"{method} {path} returned {response.status_code}",
            status_code=response.status_code if response.status_code >= 500 else 502,
            details={"path": path, "status": response.status_code, "error_code": error_code},
        )

    # ----- chats -----

    @user_scoped
    async def get_chats(
        self,
        user_id: str,
        since: datetime | None = None,
        include_messages: bool = False,
    ) -> list[Chat]:
        params: dict[str, Any] = {}
        if since is not None:
            params["since"] = since.isoformat()
        if include_messages:
            params["messages"] = "true"
        response = await self._request("GET", "/chats", params=params)
        return ChatListResponse.model_validate(response.json()).chats

    @user_scoped
    async def get_chat(
        self, user_id: str, chat_id: str, include_messages: bool = False
    ) -> Chat | None:
        params = {"messages": "true"} if include_messages else {}
        response = await self._request(
            "GET", f"/chats/{chat_id}", params=params, allow_not_found=True
        )
        if response is None:
            return None
        return ChatDetailResponse.model_validate(response.json()).chat

    @user_scoped
    async def get_chat_by_contact_id(self, user_id: str, contact_id: str) -> Chat | None:
        chats = await self.get_chats(user_id)
        return next((chat for chat in chats if chat.contact_id == contact_id), None)

    @user_scoped
    async def create_chat(self, user_id: str, data: ChatCreate) -> tuple[Chat, bool]:
        response = await self._request("POST", "/chats", json=data.to_wire(exclude_none=True))
        body = ChatCreateResponse.model_validate(response.json())
        return body.chat, body.is_existing

    @user_scoped
    async def update_chat(self, user_id: str, chat_id: str, data: ChatUpdate) -> Chat:
        response = await self._request(
            "PATCH", f"/chats/{chat_id}", json=data.to_wire(exclude_unset=True)
        )
        return ChatDetailResponse.model_validate(response.json()).chat

    @user_scoped
    async def delete_chat(self, user_id: str, chat_id: str) -> bool:
        response = await self._request("DELETE", f"/chats/{chat_id}", allow_not_found=True)
        return response is not None

    # ----- messages -----

    @user_scoped
    async def get_messages(
        self,
        user_id: str,
        chat_id: str,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> MessagePage:
        params: dict[str, Any] = {}
        if limit is not None:
            params["limit"] = limit
        if cursor:
            params["cursor"] = cursor
        response = await self._request("GET", f"/chats/{chat_id}/messages", params=params)
        return MessagePage.model_validate(response.json())

    @user_scoped
    async def add_message(self, user_id: str, chat_id: str, data: MessageCreate) -> Message:
        response = await self._request(
            "POST", f"/chats/{chat_id}/messages", json=data.to_wire(exclude_none=True)
        )
        return MessageResponse.model_validate(response.json()).message

    @user_scoped
    async def update_message(
        self, user_id: str, chat_id: str, message_id: str, data: MessageUpdate
    ) -> Message:
        response = await self._request(
            "PATCH",
            f"/chats/{chat_id}/messages/{message_id}",
            json=data.to_wire(exclude_unset=True),
        )
        return MessageResponse.model_validate(response.json()).message

    @user_scoped
    async def delete_message(self, user_id: str, chat_id: str, message_id: str) -> bool:
        response = await self._request(
            "DELETE", f"/chats/{chat_id}/messages/{message_id}", allow_not_found=True
        )
        return response is not None

    # ----- sync -----

    @user_scoped
    async def sync_chats(self, user_id: str, local_chats: list[SyncChat]) -> list[Chat]:
        body = SyncRequest(local_chats=local_chats)
        response = await self._request("POST", "/sync", json=body.to_wire())
        return SyncResponse.model_validate(response.json()).chats

    # ----- migration -----

    @user_scoped
    async def get_migration_status(self, user_id: str) -> MigrationStatusResponse:
        response = await self._request("GET", "/migrate")
        return MigrationStatusResponse.model_validate(response.json())

    @user_scoped
    async def run_migration(self, user_id: str, retry: bool = False) -> MigrationResult:
        params = {"retry": "true"} if retry else {}
        response = await self._request("POST", "/migrate", params=params)
        return MigrationResult.model_validate(response.json())
