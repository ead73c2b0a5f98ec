"""Pydantic schemas for audit events."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from app.core.schemas_auth import ActorKind


class AuditAction(str, Enum):
    AUTH_SUCCESS = "auth_success"
    AUTH_DENIED = "auth_denied"
    SEARCH = "search"
    SEARCH_INCOMPLETE = "search_incomplete"
    TIMELINE = "timeline"
    SCOPE_VIOLATION_PREVENTED = "scope_violation_prevented"
    DATA_ITEM_CREATED = "data_item_created"
    DATA_ITEM_REJECTED = "data_item_rejected"
    CREDENTIAL_CREATED = "credential_created"
    CREDENTIAL_REVOKED = "credential_revoked"
    LINK_CREATED = "link_created"
    LINK_REMOVED = "link_removed"


class AuditEvent(BaseModel):
    """Immutable audit entry. Serialized as one append-only row."""

    model_config = {"frozen": True}

    action: AuditAction
    actor_kind: ActorKind
    actor_id: UUID | None = None
    credential_id: UUID | None = None
    reason: str | None = None
    query_text: str | None = None
    filters: dict[str, Any] | None = None
    result_count: int | None = None
    scope_summary: dict[str, Any] | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    success: bool = True
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_row(self) -> dict[str, Any]:
        """Row payload for the audit_log table."""
        return self.model_dump(mode="json")


class AuditLogResponse(BaseModel):
    events: list[dict[str, Any]]
    total: int
