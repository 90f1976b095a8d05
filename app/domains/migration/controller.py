"""Migration API controller."""

import logging

from fastapi import APIRouter, Depends, Query

from app.core.config import settings
from app.core.dependencies import get_current_user_id, get_migration_service, validate_token
from app.core.ratelimit import check_migration_rate_limit, check_rate_limit
from app.domains.migration.service import MigrationService
from app.schemas.migration import MigrationResult, MigrationStatusResponse

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix=f"{settings.api_prefix}/migrate",
    tags=["migration"],
    dependencies=[Depends(validate_token)],
)


@router.get(
    "", response_model=MigrationStatusResponse, dependencies=[Depends(check_rate_limit)]
)
async def get_migration_status(
    user_id: str = Depends(get_current_user_id),
    service: MigrationService = Depends(get_migration_service),
):
    """Report the user's migration state, creating the record on first check."""
    return await service.get_migration_status(user_id)


@router.post(
    "", response_model=MigrationResult, dependencies=[Depends(check_migration_rate_limit)]
)
async def run_migration(
    retry: bool = Query(False, description="Resume after completed_with_errors or failed"),
    user_id: str = Depends(get_current_user_id),
    service: MigrationService = Depends(get_migration_service),
):
    """Copy the user's legacy chats into the current schema."""
    return await service.run_migration(user_id, retry=retry)
