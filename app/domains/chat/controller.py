"""Chat API controller with FastAPI endpoints."""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Path, Query, Response, status

from app.core.config import settings
from app.core.dependencies import get_chat_service, get_current_user_id, validate_token
from app.domains.chat.service import ChatService
from app.schemas.chat import (
    ChatCreate,
    ChatCreateResponse,
    ChatDetailResponse,
    ChatListResponse,
    ChatUpdate,
    MessageCreate,
    MessagePage,
    MessageResponse,
    MessageUpdate,
)
from app.shared.pagination import CursorParams, cursor_params

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix=f"{settings.api_prefix}/chats",
    tags=["chats"],
    dependencies=[Depends(validate_token)],  # Global token validation for all routes
)


@router.get("", response_model=ChatListResponse)
async def list_chats(
    since: datetime | None = Query(None, description="Only chats updated after this instant"),
    messages: bool = Query(False, description="Embed each chat's messages"),
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    """List the current user's chats."""
    return await service.list_chats(user_id, since=since, include_messages=messages)


@router.post("", response_model=ChatCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_chat(
    chat_data: ChatCreate,
    response: Response,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    """Create the chat for a contact.

    Returns 200 with ``isExisting: true`` when the contact already has a chat.
    """
    result = await service.create_chat(user_id, chat_data)
    if result.is_existing:
        response.status_code = status.HTTP_200_OK
    return result


@router.get("/{chat_id}", response_model=ChatDetailResponse)
async def get_chat(
    chat_id: str = Path(..., description="Chat ID"),
    messages: bool = Query(False, description="Embed the chat's messages"),
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    """Get a specific chat by ID."""
    chat = await service.get_chat(user_id, chat_id, include_messages=messages)
    return ChatDetailResponse(chat=chat)


@router.patch("/{chat_id}", response_model=ChatDetailResponse)
async def update_chat(
    chat_data: ChatUpdate,
    chat_id: str = Path(..., description="Chat ID"),
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    """Update a chat's display fields."""
    chat = await service.update_chat(user_id, chat_id, chat_data)
    return ChatDetailResponse(chat=chat)


@router.delete("/{chat_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_chat(
    chat_id: str = Path(..., description="Chat ID"),
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    """Delete a chat and all its messages."""
    await service.delete_chat(user_id, chat_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{chat_id}/messages", response_model=MessagePage)
async def get_messages(
    chat_id: str = Path(..., description="Chat ID"),
    params: CursorParams = Depends(cursor_params),
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    """Get one page of a chat's messages in chronological order."""
    return await service.get_messages(user_id, chat_id, params)


@router.post(
    "/{chat_id}/messages", response_model=MessageResponse, status_code=status.HTTP_201_CREATED
)
async def add_message(
    message_data: MessageCreate,
    chat_id: str = Path(..., description="Chat ID"),
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    """Append a message to a chat."""
    message = await service.add_message(user_id, chat_id, message_data)
    return MessageResponse(message=message)


@router.patch("/{chat_id}/messages/{message_id}", response_model=MessageResponse)
async def update_message(
    message_data: MessageUpdate,
    chat_id: str = Path(..., description="Chat ID"),
    message_id: str = Path(..., description="Message ID"),
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    """Edit a message."""
    message = await service.update_message(user_id, chat_id, message_id, message_data)
    return MessageResponse(message=message)


@router.delete("/{chat_id}/messages/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_message(
    chat_id: str = Path(..., description="Chat ID"),
    message_id: str = Path(..., description="Message ID"),
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    """Delete a message without renumbering the rest."""
    await service.delete_message(user_id, chat_id, message_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
