"""Base schemas for the application."""

from datetime import UTC, datetime
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def utcnow() -> datetime:
    return datetime.now(UTC)


UTCDateTime = Annotated[datetime, AfterValidator(ensure_utc)]


class BaseSchema(BaseModel):
    """Base schema class with common configuration.

    Fields are snake_case in Python and camelCase on the wire.
    """
    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self, **kwargs) -> dict:
        """Dump to the JSON-compatible camelCase shape used by the API and local storage."""
        return self.model_dump(mode="json", by_alias=True, **kwargs)


class ResponseSchema(BaseSchema):
    """Standard API response schema."""
    status: str
    message: Optional[str] = None
    data: Optional[dict] = None
