"""Administrative endpoints: API keys, coach-client links, audit log.

All routes require an admin actor. Everyone else gets 404.
"""

from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query

from app.core import audit
from app.core.auth_middleware import require_admin
from app.core.credentials import generate_api_key, hash_secret, key_prefix_of
from app.core.identity import Actor
from app.core.logging import get_logger
from app.core.schemas_audit import AuditAction, AuditEvent, AuditLogResponse
from app.core.schemas_auth import (
    ActorKind,
    ApiKeyCreate,
    ApiKeyCreated,
    ApiKeyListResponse,
    ApiKeySummary,
    CoachClientLink,
    CoachClientLinkCreate,
)
from app.db import audit_log as audit_db
from app.db import clients as clients_db
from app.db import coach_client_links as links_db
from app.db import credentials as credentials_db

logger = get_logger(__name__)

router = APIRouter()


def _summary_from_row(row: dict[str, Any]) -> ApiKeySummary:
    if row.get("coach_id"):
        owner_kind, owner_id = ActorKind.COACH, row["coach_id"]
    elif row.get("client_id"):
        owner_kind, owner_id = ActorKind.CLIENT, row["client_id"]
    else:
        owner_kind, owner_id = ActorKind.ADMIN, row.get("admin_id")

    return ApiKeySummary(
        id=row["id"],
        key_prefix=row["key_prefix"],
        name=row.get("name"),
        owner_kind=owner_kind,
        owner_id=owner_id,
        is_revoked=bool(row.get("is_revoked")),
        expires_at=row.get("expires_at"),
        last_used_at=row.get("last_used_at"),
        created_at=row.get("created_at"),
    )


def _admin_event(actor: Actor, action: AuditAction, metadata: dict[str, Any]) -> AuditEvent:
    return AuditEvent(
        action=action,
        actor_kind=actor.kind,
        actor_id=actor.id,
        credential_id=UUID(actor.credential_id) if actor.credential_id else None,
        metadata=metadata,
    )


# ============================================================================
# API keys
# ============================================================================


@router.post("/api-keys", response_model=ApiKeyCreated, status_code=201)
def create_api_key(
    request: ApiKeyCreate,
    actor: Actor = Depends(require_admin),
) -> ApiKeyCreated:
    """
    Issue a new API key. The plaintext key appears in this response only.
    """
    api_key = generate_api_key()

    try:
        row = credentials_db.create_credential(
            key_prefix=key_prefix_of(api_key),
            key_hash=hash_secret(api_key),
            coach_id=request.coach_id,
            client_id=request.client_id,
            admin_id=request.admin_id,
            name=request.name,
            expires_at=request.expires_at,
        )
    except Exception as e:
        logger.exception("Failed to create API key")
        raise HTTPException(status_code=500, detail="Failed to create API key") from e

    summary = _summary_from_row(row)
    audit.record(_admin_event(actor, AuditAction.CREDENTIAL_CREATED, {
        "created_credential_id": str(summary.id),
        "owner_kind": summary.owner_kind.value,
        "owner_id": str(summary.owner_id),
    }))
    logger.info(f"Issued API key {summary.key_prefix} for {summary.owner_kind.value}")

    return ApiKeyCreated(**summary.model_dump(), api_key=api_key)


@router.get("/api-keys", response_model=ApiKeyListResponse)
def list_api_keys(
    include_revoked: bool = Query(True),
    limit: int = Query(200, ge=1, le=1000),
    actor: Actor = Depends(require_admin),
) -> ApiKeyListResponse:
    """List API keys (prefix and ownership only, never hashes)."""
    try:
        rows = credentials_db.list_credentials(include_revoked=include_revoked, limit=limit)
    except Exception as e:
        logger.exception("Failed to list API keys")
        raise HTTPException(status_code=500, detail="Failed to list API keys") from e

    keys = [_summary_from_row(row) for row in rows]
    return ApiKeyListResponse(api_keys=keys, total=len(keys))


@router.post("/api-keys/{credential_id}/revoke", response_model=ApiKeySummary)
def revoke_api_key(
    credential_id: UUID,
    actor: Actor = Depends(require_admin),
) -> ApiKeySummary:
    """Revoke an API key. The very next request using it is denied."""
    try:
        row = credentials_db.revoke_credential(credential_id)
    except Exception as e:
        logger.exception("Failed to revoke API key")
        raise HTTPException(status_code=500, detail="Failed to revoke API key") from e

    if row is None:
        raise HTTPException(status_code=404, detail="Not found")

    audit.record(_admin_event(actor, AuditAction.CREDENTIAL_REVOKED, {
        "revoked_credential_id": str(credential_id),
    }))
    return _summary_from_row(row)


# ============================================================================
# Coach-client links
# ============================================================================


@router.post("/coach-client-links", response_model=CoachClientLink, status_code=201)
def create_coach_client_link(
    request: CoachClientLinkCreate,
    actor: Actor = Depends(require_admin),
) -> CoachClientLink:
    """Assign a client to a coach. Effective on the coach's next request."""
    try:
        client_row = clients_db.get_client(request.client_id)
        row = None
        if client_row is not None:
            row = links_db.create_link(request.coach_id, request.client_id)
    except Exception as e:
        logger.exception("Failed to create coach-client link")
        raise HTTPException(status_code=500, detail="Failed to create link") from e

    if row is None:
        raise HTTPException(status_code=404, detail="Not found")

    audit.record(_admin_event(actor, AuditAction.LINK_CREATED, {
        "coach_id": str(request.coach_id),
        "client_id": str(request.client_id),
    }))
    return CoachClientLink(**row)


@router.delete("/coach-client-links/{coach_id}/{client_id}", status_code=204)
def delete_coach_client_link(
    coach_id: UUID,
    client_id: UUID,
    actor: Actor = Depends(require_admin),
) -> None:
    """Unassign a client from a coach. Effective on the coach's next request."""
    try:
        removed = links_db.delete_link(coach_id, client_id)
    except Exception as e:
        logger.exception("Failed to delete coach-client link")
        raise HTTPException(status_code=500, detail="Failed to delete link") from e

    if not removed:
        raise HTTPException(status_code=404, detail="Not found")

    audit.record(_admin_event(actor, AuditAction.LINK_REMOVED, {
        "coach_id": str(coach_id),
        "client_id": str(client_id),
    }))


# ============================================================================
# Audit log
# ============================================================================


@router.get("/audit-log", response_model=AuditLogResponse)
def list_audit_log(
    action: Optional[AuditAction] = Query(None),
    actor_id: Optional[UUID] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(require_admin),
) -> AuditLogResponse:
    """Read the audit log, newest first."""
    try:
        rows, total = audit_db.list_audit_events(
            action=action.value if action else None,
            actor_id=str(actor_id) if actor_id else None,
            limit=limit,
            offset=offset,
        )
    except Exception as e:
        logger.exception("Failed to read audit log")
        raise HTTPException(status_code=500, detail="Failed to read audit log") from e

    return AuditLogResponse(events=rows, total=total)
