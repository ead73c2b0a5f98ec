"""Pydantic schemas for scoped semantic search."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from app.core.schemas_auth import ActorKind
from app.core.schemas_data_items import VisibilityLevel


class SearchRequest(BaseModel):
    """Request schema for scoped vector search.

    ``threshold`` and ``limit`` are clamped rather than rejected: threshold to
    [0, 1] and limit to [1, SEARCH_MAX_LIMIT].
    """

    query: str = Field(..., description="Natural-language search text", min_length=1)
    types: list[str] | None = Field(default=None, description="Restrict to these data types")
    coach_id: UUID | None = Field(default=None, description="Restrict to one coach")
    client_id: UUID | None = Field(default=None, description="Restrict to one client")
    organization_id: UUID | None = Field(default=None, description="Restrict to one organization")
    date_from: datetime | None = Field(default=None, description="Earliest session date (inclusive)")
    date_to: datetime | None = Field(default=None, description="Latest session date (inclusive)")
    threshold: float | None = Field(default=None, description="Minimum cosine similarity")
    limit: int | None = Field(default=None, description="Maximum number of results")


class OwnerFields(BaseModel):
    """Ownership identifiers of the data item a result came from."""

    coach_id: UUID | None = None
    client_id: UUID | None = None
    organization_id: UUID | None = None


class SearchResult(BaseModel):
    """Individual search result (one chunk)."""

    id: UUID = Field(..., description="Chunk UUID")
    data_item_id: UUID = Field(..., description="Parent data item UUID")
    data_type: str = Field(..., description="Data type of the parent item")
    content: str = Field(..., description="Chunk text content")
    similarity: float = Field(..., description="Cosine similarity score")
    visibility_level: VisibilityLevel
    owner_fields: OwnerFields
    session_date: datetime | None = Field(default=None, description="Session date, if any")
    created_at: datetime | None = Field(default=None, description="Parent item creation time")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Data item metadata")


class FiltersApplied(BaseModel):
    """Effective filter after intersecting the request with the caller's scope."""

    types: list[str] | None = None
    coach_id: UUID | None = None
    client_id: UUID | None = None
    organization_id: UUID | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    threshold: float
    limit: int
    narrowed: list[str] = Field(
        default_factory=list, description="Requested filters that were not honored"
    )


class SearchMetadata(BaseModel):
    response_time_ms: int
    embedding_model: str
    actor_kind: ActorKind


class SearchResponse(BaseModel):
    """Response schema for scoped vector search."""

    request_id: UUID = Field(..., description="Request tracking UUID")
    query: str
    results: list[SearchResult] = Field(..., description="Ranked matching chunks")
    count: int
    type_counts: dict[str, int] = Field(default_factory=dict)
    filters_applied: FiltersApplied
    metadata: SearchMetadata


class TimelineEntry(BaseModel):
    """One data item in a client's timeline."""

    data_item_id: UUID
    data_type: str
    title: str
    summary: str = Field(..., description="Opening of the item content")
    visibility_level: VisibilityLevel
    coach_id: UUID | None = None
    session_date: datetime | None = None
    created_at: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class TimelineFilters(BaseModel):
    types: list[str] | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    limit: int


class ClientTimelineResponse(BaseModel):
    """Chronological history of one client's data, newest session first."""

    client_id: UUID
    timeline: list[TimelineEntry]
    total_items: int
    by_type: dict[str, int] = Field(default_factory=dict)
    filters_applied: TimelineFilters
