"""Authorization filter construction and enforcement.

A ScopeFilter is built fresh from the resolved Actor on every request. It is
enforced twice, by two independent functions:

- ``native_predicate_params`` turns it into the ``scope_*`` parameters of the
  ``match_data_chunks_scoped`` SQL function, which evaluates the visibility
  predicate in the same statement as the similarity query.
- ``row_within_scope`` re-evaluates the same rules in Python over every row
  the store returns.

A row is returned to the caller only when it passes both.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from app.core.data_types import normalize_data_type
from app.core.identity import Actor
from app.core.schemas_auth import ActorKind
from app.core.schemas_data_items import VisibilityLevel
from app.core.schemas_search import SearchRequest


@dataclass(frozen=True)
class ScopeFilter:
    """What an actor may see. Derived per request, never cached."""

    actor_kind: ActorKind
    actor_id: str | None = None
    owned_ids: frozenset[str] = frozenset()
    visible_organization_ids: frozenset[str] = frozenset()
    can_see_all: bool = False


@dataclass(frozen=True)
class EffectiveFilter:
    """Caller filters intersected with the scope.

    ``is_empty`` means the intersection cannot match anything; the store is
    not queried at all in that case.
    """

    types: tuple[str, ...] | None = None
    coach_id: str | None = None
    client_id: str | None = None
    organization_id: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    is_empty: bool = False
    narrowed: tuple[str, ...] = field(default_factory=tuple)


def build_scope_filter(actor: Actor) -> ScopeFilter:
    """
    Build the ScopeFilter for an actor. Pure: same actor, same filter.

    Admin sees everything. A coach owns itself plus its assigned clients and
    sees org_visible items of those clients' organizations. A client owns
    only itself. Anonymous callers own nothing and see only public items.
    """
    if actor.kind == ActorKind.ADMIN:
        return ScopeFilter(
            actor_kind=actor.kind,
            actor_id=str(actor.id) if actor.id else None,
            can_see_all=True,
        )

    if actor.kind == ActorKind.COACH:
        return ScopeFilter(
            actor_kind=actor.kind,
            actor_id=str(actor.id),
            owned_ids=frozenset({str(actor.id)}) | actor.assigned_client_ids,
            visible_organization_ids=actor.assigned_organization_ids,
        )

    if actor.kind == ActorKind.CLIENT:
        return ScopeFilter(
            actor_kind=actor.kind,
            actor_id=str(actor.id),
            owned_ids=frozenset({str(actor.id)}),
        )

    return ScopeFilter(actor_kind=ActorKind.ANONYMOUS)


def normalize_types(types: list[str] | None) -> tuple[str, ...] | None:
    if not types:
        return None
    normalized: list[str] = []
    for name in types:
        canonical = normalize_data_type(name)
        if canonical not in normalized:
            normalized.append(canonical)
    return tuple(normalized)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_date_range(
    date_from: datetime | None, date_to: datetime | None
) -> tuple[datetime | None, datetime | None]:
    """
    Session date bounds in UTC (naive values are taken as UTC).

    Raises:
        ValueError: If date_from is after date_to
    """
    date_from, date_to = _as_utc(date_from), _as_utc(date_to)
    if date_from and date_to and date_from > date_to:
        raise ValueError("date_from must not be after date_to")
    return date_from, date_to


def _coach_id_allowed(scope: ScopeFilter, coach_id: str) -> bool:
    if scope.can_see_all:
        return True
    return scope.actor_kind == ActorKind.COACH and coach_id == scope.actor_id


def client_in_scope(scope: ScopeFilter, client_id: str) -> bool:
    """Whether the actor may address this client directly (filter or timeline)."""
    if scope.can_see_all:
        return True
    if scope.actor_kind == ActorKind.COACH:
        return client_id in scope.owned_ids and client_id != scope.actor_id
    if scope.actor_kind == ActorKind.CLIENT:
        return client_id == scope.actor_id
    return False


def _organization_id_allowed(scope: ScopeFilter, organization_id: str) -> bool:
    if scope.can_see_all:
        return True
    return scope.actor_kind == ActorKind.COACH and organization_id in scope.visible_organization_ids


def merge_filters(scope: ScopeFilter, request: SearchRequest) -> EffectiveFilter:
    """
    Intersect caller-supplied filters with the scope. Never widens.

    A requested ID the scope does not authorize is dropped and the filter
    becomes empty; this is not an error, it is reported in ``narrowed``.

    Raises:
        ValueError: If a requested type name is malformed or the date range
            is inverted
    """
    types = normalize_types(request.types)
    date_from, date_to = normalize_date_range(request.date_from, request.date_to)
    narrowed: list[str] = []
    own_id = scope.actor_id

    coach_id = str(request.coach_id) if request.coach_id else None
    if coach_id and not _coach_id_allowed(scope, coach_id):
        narrowed.append("coach_id")
        coach_id = own_id if scope.actor_kind == ActorKind.COACH else None

    client_id = str(request.client_id) if request.client_id else None
    if client_id and not client_in_scope(scope, client_id):
        narrowed.append("client_id")
        client_id = own_id if scope.actor_kind == ActorKind.CLIENT else None

    organization_id = str(request.organization_id) if request.organization_id else None
    if organization_id and not _organization_id_allowed(scope, organization_id):
        narrowed.append("organization_id")
        organization_id = None

    return EffectiveFilter(
        types=types,
        coach_id=coach_id,
        client_id=client_id,
        organization_id=organization_id,
        date_from=date_from,
        date_to=date_to,
        is_empty=bool(narrowed),
        narrowed=tuple(narrowed),
    )


def native_predicate_params(
    scope: ScopeFilter,
    effective: EffectiveFilter,
    query_embedding: list[float],
    threshold: float,
    match_count: int,
) -> dict[str, Any]:
    """
    Parameters for the ``match_data_chunks_scoped`` store function.

    The ``scope_*`` values drive the SQL visibility predicate; the
    ``filter_*`` values are the effective dimension filters.
    """
    return {
        "query_embedding": query_embedding,
        "match_threshold": threshold,
        "match_count": match_count,
        "filter_types": list(effective.types) if effective.types else None,
        "filter_coach_id": effective.coach_id,
        "filter_client_id": effective.client_id,
        "filter_org_id": effective.organization_id,
        "filter_date_from": _isoformat(effective.date_from),
        "filter_date_to": _isoformat(effective.date_to),
        **scope_params(scope),
    }


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def scope_params(scope: ScopeFilter) -> dict[str, Any]:
    """The ``scope_*`` arguments shared by every scoped store function."""
    return {
        "scope_can_see_all": scope.can_see_all,
        "scope_actor_kind": scope.actor_kind.value,
        "scope_actor_id": scope.actor_id,
        "scope_owned_ids": sorted(scope.owned_ids),
        "scope_org_ids": sorted(scope.visible_organization_ids),
    }


def timeline_params(
    scope: ScopeFilter,
    client_id: str,
    types: tuple[str, ...] | None,
    date_from: datetime | None,
    date_to: datetime | None,
    limit: int,
) -> dict[str, Any]:
    """Parameters for the ``list_client_items_scoped`` store function."""
    return {
        "target_client_id": client_id,
        "match_count": limit,
        "filter_types": list(types) if types else None,
        "filter_date_from": _isoformat(date_from),
        "filter_date_to": _isoformat(date_to),
        **scope_params(scope),
    }


def _as_str(value: Any) -> str | None:
    return None if value is None else str(value)


def row_within_scope(scope: ScopeFilter, row: dict[str, Any]) -> bool:
    """
    Application-level visibility check for one returned row.

    Evaluated independently of the store predicate. Unknown visibility
    levels are never visible.
    """
    if scope.can_see_all:
        return True

    try:
        visibility = VisibilityLevel(row.get("visibility_level"))
    except ValueError:
        return False

    if visibility == VisibilityLevel.PUBLIC:
        return True

    coach_id = _as_str(row.get("coach_id"))
    client_id = _as_str(row.get("client_id"))
    organization_id = _as_str(row.get("organization_id"))
    # Client data belongs to the client: a coach reaches it only while assigned
    if client_id is not None:
        owns_item = client_id in scope.owned_ids
    else:
        owns_item = coach_id is not None and coach_id in scope.owned_ids

    if visibility == VisibilityLevel.PRIVATE:
        if scope.actor_id is None:
            return False
        created_by = _as_str(row.get("created_by"))
        if created_by is not None:
            return created_by == scope.actor_id
        if scope.actor_kind == ActorKind.COACH:
            return coach_id == scope.actor_id
        if scope.actor_kind == ActorKind.CLIENT:
            return client_id == scope.actor_id
        return False

    if visibility == VisibilityLevel.COACH_ONLY:
        return scope.actor_kind == ActorKind.COACH and owns_item

    if visibility == VisibilityLevel.ORG_VISIBLE:
        if owns_item:
            return True
        return (
            scope.actor_kind == ActorKind.COACH
            and organization_id is not None
            and organization_id in scope.visible_organization_ids
        )

    return False


def row_matches_filter(effective: EffectiveFilter, row: dict[str, Any]) -> bool:
    """Whether a row satisfies the effective dimension filters."""
    if effective.is_empty:
        return False
    if effective.types and row.get("data_type") not in effective.types:
        return False
    for column in ("coach_id", "client_id", "organization_id"):
        wanted = getattr(effective, column)
        if wanted is not None and _as_str(row.get(column)) != wanted:
            return False
    return within_date_range(effective.date_from, effective.date_to, row.get("session_date"))


def within_date_range(
    date_from: datetime | None, date_to: datetime | None, session_date: Any
) -> bool:
    """Whether a row's session_date falls in the bounds. Undated rows fail any bound."""
    if date_from is None and date_to is None:
        return True
    if not session_date:
        return False
    if isinstance(session_date, str):
        session_date = datetime.fromisoformat(session_date.replace("Z", "+00:00"))
    session_date = _as_utc(session_date)
    if date_from is not None and session_date < date_from:
        return False
    if date_to is not None and session_date > date_to:
        return False
    return True


def reported_filters(scope: ScopeFilter, effective: EffectiveFilter) -> dict[str, str | None]:
    """
    Owner filters as shown to the caller in ``filters_applied``.

    A client is always reported as filtered to itself, even when it did not
    ask for a client filter; public items remain reachable in that case.
    """
    client_id = effective.client_id
    if client_id is None and scope.actor_kind == ActorKind.CLIENT:
        client_id = scope.actor_id
    return {
        "coach_id": effective.coach_id,
        "client_id": client_id,
        "organization_id": effective.organization_id,
    }


def scope_summary(scope: ScopeFilter) -> dict[str, Any]:
    """Compact scope description for audit rows."""
    return {
        "actor_kind": scope.actor_kind.value,
        "can_see_all": scope.can_see_all,
        "owned_ids": sorted(scope.owned_ids),
        "visible_organization_ids": sorted(scope.visible_organization_ids),
    }
