"""
Shared DTO building blocks used between the application and API layers.
"""
from datetime import datetime, timezone

from pydantic import BaseModel, Field, model_serializer

from core.config import settings


class DTOBase(BaseModel):
    """Base DTO: unify datetime serialization to UTC-Z for all subclasses."""

    @model_serializer(mode="wrap")
    def _serialize_model(self, handler):  # type: ignore[override]
        data = handler(self)

        def convert(value):
            if isinstance(value, datetime):
                ts = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
                s = ts.astimezone(timezone.utc).isoformat()
                return s.replace("+00:00", "Z")
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(data)


class CurrentUserDTO(DTOBase):
    """Identity extracted from a verified bearer token."""
    id: int
    is_superuser: bool = False


class PaginationParams(DTOBase):
    """Page/size query parameters, exposing skip/limit."""
    page: int = Field(1, ge=1, description="1-based page number")
    size: int = Field(
        default=settings.DEFAULT_PAGE_SIZE,
        ge=1,
        le=settings.MAX_PAGE_SIZE,
        description="Page size",
    )

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.size

    @property
    def limit(self) -> int:
        return self.size
