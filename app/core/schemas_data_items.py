"""Pydantic schemas for data items, chunks and the data type registry."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class VisibilityLevel(str, Enum):
    """Per-item access tier."""

    PRIVATE = "private"
    COACH_ONLY = "coach_only"
    ORG_VISIBLE = "org_visible"
    PUBLIC = "public"


class DataItemCreate(BaseModel):
    """Request schema for storing a document."""

    data_type: str = Field(..., min_length=1, max_length=64, description="Document type name")
    raw_content: str = Field(..., min_length=1, description="Full document text")
    visibility_level: VisibilityLevel | None = Field(
        default=None, description="Access tier; defaults per data type"
    )
    coach_id: UUID | None = Field(default=None, description="Owning coach")
    client_id: UUID | None = Field(default=None, description="Owning client")
    organization_id: UUID | None = Field(default=None, description="Owning organization")
    session_date: datetime | None = Field(default=None, description="Session date, if any")
    metadata: dict[str, Any] = Field(
        default_factory=dict, description="Type-specific attributes"
    )


class DataItemResponse(BaseModel):
    """Response schema after a document has been stored and indexed."""

    request_id: UUID = Field(..., description="Request tracking UUID")
    data_item_id: UUID = Field(..., description="Created data item UUID")
    data_type: str = Field(..., description="Normalized data type")
    visibility_level: VisibilityLevel
    coach_id: UUID | None = None
    client_id: UUID | None = None
    organization_id: UUID | None = None
    chunks_inserted: int = Field(..., description="Number of chunks inserted")


class DataTypeInfo(BaseModel):
    """Registered data type as exposed to callers."""

    name: str
    description: str
    default_visibility: VisibilityLevel
    aliases: list[str] = Field(default_factory=list)


class DataTypeListResponse(BaseModel):
    data_types: list[DataTypeInfo]
