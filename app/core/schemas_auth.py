"""Pydantic schemas for actors, API keys and coach-client assignments."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class ActorKind(str, Enum):
    """Role of the caller behind a request."""
    COACH = "coach"
    CLIENT = "client"
    ADMIN = "admin"
    ANONYMOUS = "anonymous"


# ============================================================================
# API Key Schemas
# ============================================================================


class ApiKeyCreate(BaseModel):
    """Request to issue a new API key. Exactly one owner must be set."""
    coach_id: Optional[UUID] = None
    client_id: Optional[UUID] = None
    admin_id: Optional[UUID] = None
    name: Optional[str] = Field(default=None, max_length=200)
    expires_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _exactly_one_owner(self) -> "ApiKeyCreate":
        owners = [o for o in (self.coach_id, self.client_id, self.admin_id) if o is not None]
        if len(owners) != 1:
            raise ValueError("Exactly one of coach_id, client_id or admin_id is required")
        return self


class ApiKeySummary(BaseModel):
    """API key as listed to administrators (never includes the hash)."""
    id: UUID
    key_prefix: str
    name: Optional[str] = None
    owner_kind: ActorKind
    owner_id: UUID
    is_revoked: bool = False
    expires_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class ApiKeyCreated(ApiKeySummary):
    """Response after issuing a key. The plaintext key is shown only here."""
    api_key: str


class ApiKeyListResponse(BaseModel):
    api_keys: list[ApiKeySummary]
    total: int


# ============================================================================
# Coach-Client Assignment Schemas
# ============================================================================


class CoachClientLinkCreate(BaseModel):
    """Assign a client to a coach."""
    coach_id: UUID
    client_id: UUID


class CoachClientLink(CoachClientLinkCreate):
    """Stored coach-client assignment."""
    id: Optional[UUID] = None
    created_at: Optional[datetime] = None
