"""Pagination utilities."""

from fastapi import Query
from pydantic import BaseModel, Field

from app.core.config import settings


class CursorParams(BaseModel):
    """Cursor pagination parameters.

    ``cursor`` is the id of the last item the caller has already seen.
    """

    limit: int = Field(default=settings.messages_default_limit, ge=1, le=settings.messages_max_limit)
    cursor: str | None = Field(default=None, min_length=1)


def cursor_params(
    limit: int = Query(
        settings.messages_default_limit,
        ge=1,
        le=settings.messages_max_limit,
        description="Page size",
    ),
    cursor: str | None = Query(None, description="Id of the last message already seen"),
) -> CursorParams:
    """FastAPI dependency building ``CursorParams`` from the query string."""
    return CursorParams(limit=limit, cursor=cursor or None)
