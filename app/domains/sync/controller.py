"""Sync API controller."""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Query

from app.core.config import settings
from app.core.dependencies import get_current_user_id, get_sync_service, validate_token
from app.core.ratelimit import check_rate_limit
from app.domains.sync.service import SyncService
from app.schemas.sync import SyncRequest, SyncResponse

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix=f"{settings.api_prefix}/sync",
    tags=["sync"],
    dependencies=[Depends(validate_token)],
)


@router.get("", response_model=SyncResponse, dependencies=[Depends(check_rate_limit)])
async def pull(
    since: datetime | None = Query(None, description="Only chats updated after this instant"),
    user_id: str = Depends(get_current_user_id),
    service: SyncService = Depends(get_sync_service),
):
    """Fetch every chat with its messages for an initial load or refresh."""
    return await service.pull(user_id, since=since)


@router.post("", response_model=SyncResponse, dependencies=[Depends(check_rate_limit)])
async def push(
    sync_request: SyncRequest,
    user_id: str = Depends(get_current_user_id),
    service: SyncService = Depends(get_sync_service),
):
    """Merge the client's local chats and return the resulting server state."""
    return await service.push(user_id, sync_request)
