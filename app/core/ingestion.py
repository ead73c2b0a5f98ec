"""Data item ingestion: ownership validation, chunking, embedding, storage.

An item must carry consistent ownership fields and a valid visibility level
before any chunk is created. Anything else is rejected and audited.
"""

import uuid
from typing import Any
from uuid import UUID

from app.core import audit
from app.core.chunking import chunk_text
from app.core.config import get_settings
from app.core.data_types import DataTypeHandler, get_data_type
from app.core.embeddings import embed_texts
from app.core.errors import DataItemValidationError
from app.core.identity import Actor
from app.core.logging import get_logger
from app.core.schemas_audit import AuditAction, AuditEvent
from app.core.schemas_auth import ActorKind
from app.core.schemas_data_items import DataItemCreate, DataItemResponse, VisibilityLevel
from app.db import coach_client_links as links_db
from app.db import clients as clients_db
from app.db import data_items as data_items_db

logger = get_logger(__name__)


def _resolve_organization(payload: DataItemCreate) -> str | None:
    """Organization implied by the client, checked against the one given."""
    requested_org = str(payload.organization_id) if payload.organization_id else None
    if payload.client_id is None:
        return requested_org

    client = clients_db.get_client(payload.client_id)
    if client is None:
        raise DataItemValidationError("Unknown client", field="client_id")

    client_org = client.get("organization_id")
    client_org = str(client_org) if client_org else None
    if requested_org is not None and requested_org != client_org:
        raise DataItemValidationError(
            "organization_id does not match the client's organization",
            field="organization_id",
        )
    return client_org


def _check_authority(
    actor: Actor,
    coach_id: str | None,
    client_id: str | None,
    organization_id: str | None,
    organization_given: bool,
) -> None:
    """A coach may only file items for itself and its assigned clients.

    An admin may file for anyone, but a coach and client named together must
    be linked.
    """
    if actor.kind == ActorKind.ADMIN:
        if (
            coach_id is not None
            and client_id is not None
            and client_id not in links_db.list_client_ids_for_coach(coach_id)
        ):
            raise DataItemValidationError("Client is not assigned to this coach", field="client_id")
        return
    if actor.kind != ActorKind.COACH:
        raise DataItemValidationError("Actor may not create data items")

    if coach_id is not None and coach_id != str(actor.id):
        raise DataItemValidationError("Cannot assign another coach as owner", field="coach_id")
    if client_id is not None and client_id not in actor.assigned_client_ids:
        raise DataItemValidationError("Client is not assigned to this coach", field="client_id")
    if (
        organization_given
        and organization_id is not None
        and organization_id not in actor.assigned_organization_ids
    ):
        raise DataItemValidationError(
            "Organization is not visible to this coach", field="organization_id"
        )


def _check_visibility(
    visibility: VisibilityLevel,
    coach_id: str | None,
    client_id: str | None,
    organization_id: str | None,
    created_by: str | None,
) -> None:
    if visibility == VisibilityLevel.ORG_VISIBLE and organization_id is None:
        raise DataItemValidationError(
            "org_visible items require an organization_id", field="organization_id"
        )
    if visibility == VisibilityLevel.COACH_ONLY and coach_id is None and client_id is None:
        raise DataItemValidationError(
            "coach_only items require a coach_id or client_id", field="visibility_level"
        )
    if (
        visibility == VisibilityLevel.PRIVATE
        and coach_id is None
        and client_id is None
        and created_by is None
    ):
        raise DataItemValidationError(
            "private items require an owner or creator", field="visibility_level"
        )


def validate_data_item(
    actor: Actor, payload: DataItemCreate
) -> tuple[DataTypeHandler, dict[str, Any]]:
    """
    Check a data item against the ingestion contract.

    Args:
        actor: Coach or admin filing the item
        payload: Requested item

    Returns:
        Tuple of (type handler, row payload ready for insert)

    Raises:
        DataItemValidationError: If the item must be rejected
    """
    settings = get_settings()

    try:
        handler = get_data_type(payload.data_type)
    except ValueError as e:
        raise DataItemValidationError(str(e), field="data_type") from e

    content = payload.raw_content
    if not content.strip():
        raise DataItemValidationError("raw_content must not be blank", field="raw_content")
    if len(content) > settings.MAX_CONTENT_CHARS:
        raise DataItemValidationError(
            f"raw_content exceeds {settings.MAX_CONTENT_CHARS} characters", field="raw_content"
        )

    coach_id = str(payload.coach_id) if payload.coach_id else None
    if coach_id is None and actor.kind == ActorKind.COACH:
        coach_id = str(actor.id)
    client_id = str(payload.client_id) if payload.client_id else None
    organization_id = _resolve_organization(payload)
    created_by = str(actor.id) if actor.id else None
    visibility = payload.visibility_level or handler.default_visibility

    _check_authority(
        actor, coach_id, client_id, organization_id, payload.organization_id is not None
    )
    _check_visibility(visibility, coach_id, client_id, organization_id, created_by)

    row = {
        "data_type": handler.name,
        "coach_id": coach_id,
        "client_id": client_id,
        "organization_id": organization_id,
        "created_by": created_by,
        "visibility_level": visibility.value,
        "raw_content": content,
        "session_date": payload.session_date.isoformat() if payload.session_date else None,
        "metadata": payload.metadata,
    }
    return handler, row


def _audit_rejection(actor: Actor, payload: DataItemCreate, error: DataItemValidationError) -> None:
    audit.record(AuditEvent(
        action=AuditAction.DATA_ITEM_REJECTED,
        actor_kind=actor.kind,
        actor_id=actor.id,
        credential_id=UUID(actor.credential_id) if actor.credential_id else None,
        reason=str(error),
        success=False,
        metadata={"data_type": payload.data_type, "field": error.field},
    ))


def create_data_item(actor: Actor, payload: DataItemCreate) -> DataItemResponse:
    """
    Validate, store, chunk, embed and index one data item.

    Raises:
        DataItemValidationError: If the item violates the ingestion contract
        RetrievalError: If embedding fails (the stored item is removed)
    """
    request_id = uuid.uuid4()

    try:
        handler, row = validate_data_item(actor, payload)
    except DataItemValidationError as e:
        logger.info(f"Data item rejected: {e}", extra={"request_id": str(request_id)})
        _audit_rejection(actor, payload, e)
        raise

    # Step 1: Store the item
    item = data_items_db.insert_data_item(row, request_id)
    data_item_id = uuid.UUID(str(item["id"]))

    try:
        # Step 2: Chunk with the type's window
        chunks = chunk_text(
            row["raw_content"],
            max_chars=handler.chunk_max_chars,
            overlap=handler.chunk_overlap,
            metadata={"data_type": handler.name},
        )

        # Step 3: Embed and store chunks
        inserted = 0
        if chunks:
            embeddings = embed_texts([chunk["content"] for chunk in chunks])
            inserted = len(
                data_items_db.insert_chunks(data_item_id, chunks, embeddings, request_id)
            )
    except Exception:
        logger.exception(
            "Chunk indexing failed, removing data item",
            extra={"request_id": str(request_id), "data_item_id": str(data_item_id)},
        )
        try:
            data_items_db.delete_data_item(data_item_id)
        except Exception:
            logger.exception("Failed to remove data item after indexing failure")
        raise

    audit.record(AuditEvent(
        action=AuditAction.DATA_ITEM_CREATED,
        actor_kind=actor.kind,
        actor_id=actor.id,
        credential_id=UUID(actor.credential_id) if actor.credential_id else None,
        metadata={
            "request_id": str(request_id),
            "data_item_id": str(data_item_id),
            "data_type": handler.name,
            "visibility_level": row["visibility_level"],
            "chunks_inserted": inserted,
        },
    ))

    logger.info(
        f"Indexed data item {data_item_id} with {inserted} chunks",
        extra={"request_id": str(request_id), "data_item_id": str(data_item_id)},
    )

    return DataItemResponse(
        request_id=request_id,
        data_item_id=data_item_id,
        data_type=handler.name,
        visibility_level=VisibilityLevel(row["visibility_level"]),
        coach_id=row["coach_id"],
        client_id=row["client_id"],
        organization_id=row["organization_id"],
        chunks_inserted=inserted,
    )
