"""Scoped retrieval engine. ONE function every search calls.

Pipeline: scope → merge filters → embed → scoped store search → app-level
re-check → rank → truncate → annotate → audit.

The store applies the scope predicate natively (``match_data_chunks_scoped``)
and every returned row is re-checked here with ``row_within_scope``. Rows
failing the second check are dropped and recorded as
``scope_violation_prevented``; the request still succeeds.

Usage:
    from app.core.retrieval import search

    response = await search(actor, SearchRequest(query="delegation habits"))
"""

from __future__ import annotations

import asyncio
import time
from collections import Counter
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

import httpx

from app.core import audit
from app.core.config import get_settings
from app.core.embeddings import embed_query
from app.core.errors import RetrievalError, StoreUnavailableError
from app.core.identity import Actor
from app.core.logging import get_logger
from app.core.schemas_audit import AuditAction, AuditEvent
from app.core.schemas_search import (
    FiltersApplied,
    OwnerFields,
    SearchMetadata,
    SearchRequest,
    SearchResponse,
    SearchResult,
)
from app.core.scope import (
    EffectiveFilter,
    ScopeFilter,
    build_scope_filter,
    merge_filters,
    native_predicate_params,
    reported_filters,
    row_matches_filter,
    row_within_scope,
    scope_summary,
)
from app.db import data_chunks as data_chunks_db

logger = get_logger(__name__)

_TRANSIENT_STORE_ERRORS = (httpx.TransportError,)
_STORE_RETRY_DELAY_SECONDS = 0.25


# =============================================================================
# Request normalization
# =============================================================================


def clamp_threshold(threshold: float | None) -> float:
    """Threshold within [0, 1]; None means the configured default."""
    if threshold is None:
        return get_settings().SEARCH_DEFAULT_THRESHOLD
    return min(max(float(threshold), 0.0), 1.0)


def clamp_limit(limit: int | None) -> int:
    """Limit within [1, SEARCH_MAX_LIMIT]; None means the configured default."""
    settings = get_settings()
    if limit is None:
        return settings.SEARCH_DEFAULT_LIMIT
    return min(max(int(limit), 1), settings.SEARCH_MAX_LIMIT)


def validate_query(query: str) -> str:
    """
    Reject blank or oversized query text.

    Raises:
        ValueError: If the query is blank or longer than MAX_QUERY_CHARS
    """
    text = query.strip()
    if not text:
        raise ValueError("Query must not be blank")
    max_chars = get_settings().MAX_QUERY_CHARS
    if len(text) > max_chars:
        raise ValueError(f"Query exceeds {max_chars} characters")
    return text


# =============================================================================
# Store access
# =============================================================================


async def _fetch_candidates(params: dict[str, Any]) -> list[dict[str, Any]]:
    """
    Run the scoped store search, retrying once on transport failures.

    Raises:
        StoreUnavailableError: If the store cannot be queried
    """
    attempts = get_settings().STORE_MAX_RETRIES + 1

    for attempt in range(attempts):
        try:
            return await asyncio.to_thread(data_chunks_db.match_data_chunks_scoped, params)
        except _TRANSIENT_STORE_ERRORS as e:
            if attempt + 1 < attempts:
                logger.warning(f"Store search attempt {attempt + 1} failed: {e}. Retrying")
                await asyncio.sleep(_STORE_RETRY_DELAY_SECONDS)
                continue
            logger.error(f"Store unavailable after {attempts} attempts: {e}")
            raise StoreUnavailableError("Document store unavailable") from e
        except Exception as e:
            logger.exception("Store search failed")
            raise StoreUnavailableError("Document store query failed", retryable=False) from e

    return []


# =============================================================================
# Application-level enforcement and ranking
# =============================================================================


def _created_at_key(row: dict[str, Any]) -> float:
    value = row.get("created_at")
    if not value:
        return float("-inf")
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


def rank_rows(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Similarity descending, ties broken by most recent data item."""
    return sorted(
        rows,
        key=lambda r: (float(r.get("similarity") or 0.0), _created_at_key(r)),
        reverse=True,
    )


def enforce_scope(
    actor: Actor,
    scope: ScopeFilter,
    effective: EffectiveFilter,
    rows: list[dict[str, Any]],
    request_id: UUID,
) -> list[dict[str, Any]]:
    """
    Second, independent check over rows returned by the store.

    Rows outside the scope or the effective filter are dropped and audited.
    """
    kept = []
    for row in rows:
        if row_within_scope(scope, row) and row_matches_filter(effective, row):
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
                "chunk_id": str(row.get("id")),
                "data_item_id": str(row.get("data_item_id")),
                "visibility_level": row.get("visibility_level"),
            },
        ))
    return kept


def _to_result(row: dict[str, Any]) -> SearchResult:
    return SearchResult(
        id=row["id"],
        data_item_id=row["data_item_id"],
        data_type=row["data_type"],
        content=row.get("content") or "",
        similarity=float(row["similarity"]),
        visibility_level=row["visibility_level"],
        owner_fields=OwnerFields(
            coach_id=row.get("coach_id"),
            client_id=row.get("client_id"),
            organization_id=row.get("organization_id"),
        ),
        session_date=row.get("session_date"),
        created_at=row.get("created_at"),
        metadata=row.get("metadata") or {},
    )


def _record_incomplete(
    actor: Actor,
    scope: ScopeFilter,
    query_text: str,
    filters_applied: FiltersApplied,
    request_id: UUID,
    reason: str,
) -> None:
    """Audit a search that ended before producing a response."""
    audit.record(AuditEvent(
        action=AuditAction.SEARCH_INCOMPLETE,
        actor_kind=actor.kind,
        actor_id=actor.id,
        credential_id=UUID(actor.credential_id) if actor.credential_id else None,
        reason=reason,
        query_text=query_text,
        filters=filters_applied.model_dump(mode="json"),
        scope_summary=scope_summary(scope),
        success=False,
        metadata={"request_id": str(request_id), "reason": reason},
    ))


# =============================================================================
# Search
# =============================================================================


async def search(
    actor: Actor,
    request: SearchRequest,
    request_id: UUID | None = None,
) -> SearchResponse:
    """
    Scoped semantic search.

    Args:
        actor: Resolved caller (anonymous allowed)
        request: Query text and optional dimension filters
        request_id: Request tracking UUID (generated if omitted)

    Returns:
        SearchResponse with ranked results and the effective filters

    Raises:
        ValueError: If the query or a type name is malformed
        EmbeddingUnavailableError: If the embedding service stays unavailable
        EmbeddingRejectedError: If the embedding service refuses the query
        StoreUnavailableError: If the store cannot be queried
    """
    settings = get_settings()
    started = time.perf_counter()
    request_id = request_id or uuid4()

    query_text = validate_query(request.query)
    threshold = clamp_threshold(request.threshold)
    limit = clamp_limit(request.limit)

    scope = build_scope_filter(actor)
    effective = merge_filters(scope, request)
    filters_applied = FiltersApplied(
        types=list(effective.types) if effective.types else None,
        date_from=effective.date_from,
        date_to=effective.date_to,
        threshold=threshold,
        limit=limit,
        narrowed=list(effective.narrowed),
        **reported_filters(scope, effective),
    )

    try:
        query_embedding = await embed_query(query_text)

        if effective.is_empty:
            logger.info(
                f"Filters narrowed to empty for {actor.kind.value}: {list(effective.narrowed)}",
                extra={"request_id": str(request_id)},
            )
            rows: list[dict[str, Any]] = []
        else:
            params = native_predicate_params(
                scope,
                effective,
                query_embedding,
                threshold,
                limit * settings.SEARCH_CANDIDATE_MULTIPLIER,
            )
            rows = await _fetch_candidates(params)

    except asyncio.CancelledError:
        _record_incomplete(actor, scope, query_text, filters_applied, request_id, "cancelled")
        raise

    except RetrievalError as e:
        _record_incomplete(
            actor, scope, query_text, filters_applied, request_id, type(e).__name__
        )
        raise

    rows = [r for r in rows if float(r.get("similarity") or 0.0) >= threshold]
    rows = enforce_scope(actor, scope, effective, rows, request_id)
    rows = rank_rows(rows)[:limit]

    results = [_to_result(r) for r in rows]
    type_counts = dict(Counter(r.data_type for r in results))
    elapsed_ms = int((time.perf_counter() - started) * 1000)

    audit.record(AuditEvent(
        action=AuditAction.SEARCH,
        actor_kind=actor.kind,
        actor_id=actor.id,
        credential_id=UUID(actor.credential_id) if actor.credential_id else None,
        query_text=query_text,
        filters=filters_applied.model_dump(mode="json"),
        result_count=len(results),
        scope_summary=scope_summary(scope),
        metadata={"request_id": str(request_id), "response_time_ms": elapsed_ms},
    ))

    logger.info(
        f"Search returned {len(results)} results for {actor.kind.value}",
        extra={"request_id": str(request_id), "result_count": len(results)},
    )

    return SearchResponse(
        request_id=request_id,
        query=query_text,
        results=results,
        count=len(results),
        type_counts=type_counts,
        filters_applied=filters_applied,
        metadata=SearchMetadata(
            response_time_ms=elapsed_ms,
            embedding_model=settings.EMBEDDING_MODEL,
            actor_kind=actor.kind,
        ),
    )
