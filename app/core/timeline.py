"""Chronological view of one client's data items, restricted to the caller's scope.

The store applies the same visibility predicate as search
(``list_client_items_scoped``) and every row is re-checked with
``row_within_scope`` before it is returned.
"""

import asyncio
from collections import Counter
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

import httpx

from app.core import audit
from app.core.config import get_settings
from app.core.errors import StoreUnavailableError
from app.core.identity import Actor
from app.core.logging import get_logger
from app.core.schemas_audit import AuditAction, AuditEvent
from app.core.schemas_search import ClientTimelineResponse, TimelineEntry, TimelineFilters
from app.core.scope import (
    build_scope_filter,
    client_in_scope,
    normalize_date_range,
    normalize_types,
    row_within_scope,
    scope_summary,
    timeline_params,
    within_date_range,
)
from app.db import data_items as data_items_db

logger = get_logger(__name__)


def clamp_timeline_limit(limit: int | None) -> int:
    """Limit within [1, TIMELINE_MAX_LIMIT]; None means the configured default."""
    settings = get_settings()
    if limit is None:
        return settings.TIMELINE_DEFAULT_LIMIT
    return min(max(int(limit), 1), settings.TIMELINE_MAX_LIMIT)


def _summarize(content: str | None) -> str:
    content = content or ""
    max_chars = get_settings().TIMELINE_SUMMARY_CHARS
    if len(content) <= max_chars:
        return content
    return content[:max_chars] + "..."


def _title(row: dict[str, Any]) -> str:
    title = (row.get("metadata") or {}).get("title")
    if title:
        return str(title)
    return f"{row['data_type']} - {row.get('session_date') or 'No date'}"


def _to_entry(row: dict[str, Any]) -> TimelineEntry:
    return TimelineEntry(
        data_item_id=row["id"],
        data_type=row["data_type"],
        title=_title(row),
        summary=_summarize(row.get("raw_content")),
        visibility_level=row["visibility_level"],
        coach_id=row.get("coach_id"),
        session_date=row.get("session_date"),
        created_at=row.get("created_at"),
        metadata=row.get("metadata") or {},
    )


async def _fetch_items(params: dict[str, Any]) -> list[dict[str, Any]]:
    try:
        return await asyncio.to_thread(data_items_db.list_client_items_scoped, params)
    except httpx.TransportError as e:
        logger.error(f"Store unavailable for timeline: {e}")
        raise StoreUnavailableError("Document store unavailable") from e
    except Exception as e:
        logger.exception("Timeline query failed")
        raise StoreUnavailableError("Document store query failed", retryable=False) from e


async def client_timeline(
    actor: Actor,
    client_id: UUID,
    types: list[str] | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int | None = None,
) -> ClientTimelineResponse | None:
    """
    Data items for one client, newest session first.

    Only items the caller could also find through search are listed.

    Args:
        actor: Resolved caller
        client_id: Client whose history is requested
        types: Optional data type names (aliases accepted)
        date_from: Earliest session date (inclusive)
        date_to: Latest session date (inclusive)
        limit: Maximum entries (clamped)

    Returns:
        ClientTimelineResponse, or None when the client is outside the
        caller's scope

    Raises:
        ValueError: If a type name is malformed or the date range is inverted
        StoreUnavailableError: If the store cannot be queried
    """
    request_id = uuid4()
    scope = build_scope_filter(actor)
    normalized_types = normalize_types(types)
    date_from, date_to = normalize_date_range(date_from, date_to)
    limit = clamp_timeline_limit(limit)

    if not client_in_scope(scope, str(client_id)):
        logger.info(
            f"Timeline for client {client_id} outside scope of {actor.kind.value}",
            extra={"request_id": str(request_id)},
        )
        return None

    params = timeline_params(
        scope, str(client_id), normalized_types, date_from, date_to, limit
    )
    rows = await _fetch_items(params)

    kept = []
    for row in rows:
        if (
            row_within_scope(scope, row)
            and str(row.get("client_id")) == str(client_id)
            and (not normalized_types or row.get("data_type") in normalized_types)
            and within_date_range(date_from, date_to, row.get("session_date"))
        ):
            kept.append(row)
            continue

        audit.record(AuditEvent(
            action=AuditAction.SCOPE_VIOLATION_PREVENTED,
            actor_kind=actor.kind,
            actor_id=actor.id,
            credential_id=UUID(actor.credential_id) if actor.credential_id else None,
            scope_summary=scope_summary(scope),
            success=False,
            metadata={
                "request_id": str(request_id),
                "data_item_id": str(row.get("id")),
                "visibility_level": row.get("visibility_level"),
            },
        ))

    entries = [_to_entry(r) for r in kept[:limit]]
    filters_applied = TimelineFilters(
        types=list(normalized_types) if normalized_types else None,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
    )

    audit.record(AuditEvent(
        action=AuditAction.TIMELINE,
        actor_kind=actor.kind,
        actor_id=actor.id,
        credential_id=UUID(actor.credential_id) if actor.credential_id else None,
        filters={"client_id": str(client_id), **filters_applied.model_dump(mode="json")},
        result_count=len(entries),
        scope_summary=scope_summary(scope),
        metadata={"request_id": str(request_id)},
    ))

    return ClientTimelineResponse(
        client_id=client_id,
        timeline=entries,
        total_items=len(entries),
        by_type=dict(Counter(e.data_type for e in entries)),
        filters_applied=filters_applied,
    )
