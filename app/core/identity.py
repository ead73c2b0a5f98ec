"""Identity resolution: opaque API key -> Actor with request-scoped context.

Resolution runs on every request. Nothing here is cached across requests,
so revocations and coach-client reassignments take effect on the next call.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from app.core import audit
from app.core.credentials import key_prefix_of, looks_like_api_key, verify_secret
from app.core.errors import AuthenticationError, DenialReason, StoreUnavailableError
from app.core.logging import get_logger, log_with_context
from app.core.schemas_audit import AuditAction, AuditEvent
from app.core.schemas_auth import ActorKind
from app.db import clients as clients_db
from app.db import coach_client_links as links_db
from app.db import credentials as credentials_db

logger = get_logger(__name__)


@dataclass(frozen=True)
class Actor:
    """The authenticated caller. Derived per request, never persisted."""

    kind: ActorKind
    id: UUID | None = None
    assigned_client_ids: frozenset[str] = frozenset()
    assigned_organization_ids: frozenset[str] = frozenset()
    credential_id: str | None = None

    @classmethod
    def anonymous(cls) -> "Actor":
        return cls(kind=ActorKind.ANONYMOUS)

    @property
    def is_admin(self) -> bool:
        return self.kind == ActorKind.ADMIN

    @property
    def is_coach(self) -> bool:
        return self.kind == ActorKind.COACH


def _parse_timestamp(value: str | datetime | None) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _owner_of(record: dict) -> tuple[ActorKind, UUID]:
    """The single owner of a credential record."""
    owners = [
        (kind, record.get(column))
        for kind, column in (
            (ActorKind.COACH, "coach_id"),
            (ActorKind.CLIENT, "client_id"),
            (ActorKind.ADMIN, "admin_id"),
        )
        if record.get(column)
    ]
    if len(owners) != 1:
        raise AuthenticationError(DenialReason.INVALID_OWNERSHIP, credential_id=record.get("id"))
    kind, owner_id = owners[0]
    return kind, UUID(str(owner_id))


def _deny(reason: DenialReason, credential_id: str | None = None) -> AuthenticationError:
    log_with_context(
        logger,
        logging.INFO,
        "Credential denied",
        reason=reason.value,
        credential_id=credential_id,
    )
    audit.record(AuditEvent(
        action=AuditAction.AUTH_DENIED,
        actor_kind=ActorKind.ANONYMOUS,
        credential_id=UUID(str(credential_id)) if credential_id else None,
        reason=reason.value,
        success=False,
    ))
    return AuthenticationError(reason, credential_id=credential_id)


def load_coach_context(coach_id: UUID) -> tuple[frozenset[str], frozenset[str]]:
    """
    Current assigned clients of a coach and those clients' organizations.

    Returns:
        Tuple of (client IDs, organization IDs)
    """
    client_ids = links_db.list_client_ids_for_coach(coach_id)
    organizations = clients_db.get_client_organizations(client_ids)
    org_ids = {org_id for org_id in organizations.values() if org_id}
    return frozenset(str(c) for c in client_ids), frozenset(str(o) for o in org_ids)


def _find_matching_record(credential: str) -> dict | None:
    candidates = credentials_db.list_credentials_by_prefix(key_prefix_of(credential))
    matched = None
    # Every candidate is checked so timing does not depend on match position
    for candidate in candidates:
        if verify_secret(credential, candidate.get("key_hash") or "") and matched is None:
            matched = candidate
    return matched


def resolve(credential: str) -> Actor:
    """
    Resolve a raw credential into an Actor.

    Args:
        credential: Raw API key from the request boundary

    Returns:
        Actor with its static context loaded (assigned clients for a coach)

    Raises:
        AuthenticationError: Unknown, revoked, expired or malformed credential
        StoreUnavailableError: If the credential or relationship lookup fails
    """
    if not credential or not looks_like_api_key(credential):
        raise _deny(DenialReason.MALFORMED_CREDENTIAL)

    try:
        record = _find_matching_record(credential)
    except Exception as e:
        logger.error(f"Credential lookup failed: {e}")
        raise StoreUnavailableError("Credential lookup failed") from e

    if record is None:
        raise _deny(DenialReason.CREDENTIAL_NOT_FOUND)

    credential_id = str(record["id"])
    if record.get("is_revoked"):
        raise _deny(DenialReason.CREDENTIAL_REVOKED, credential_id)

    expires_at = _parse_timestamp(record.get("expires_at"))
    if expires_at is not None and expires_at <= datetime.now(timezone.utc):
        raise _deny(DenialReason.CREDENTIAL_EXPIRED, credential_id)

    try:
        kind, owner_id = _owner_of(record)
    except AuthenticationError as e:
        raise _deny(e.reason, credential_id) from e

    try:
        credentials_db.touch_last_used(credential_id)
    except Exception as e:
        logger.warning(f"last_used_at update failed: {e}")

    client_ids: frozenset[str] = frozenset()
    org_ids: frozenset[str] = frozenset()
    if kind == ActorKind.COACH:
        try:
            client_ids, org_ids = load_coach_context(owner_id)
        except Exception as e:
            logger.error(f"Coach context lookup failed for {owner_id}: {e}")
            raise StoreUnavailableError("Coach context lookup failed") from e

    actor = Actor(
        kind=kind,
        id=owner_id,
        assigned_client_ids=client_ids,
        assigned_organization_ids=org_ids,
        credential_id=credential_id,
    )

    audit.record(AuditEvent(
        action=AuditAction.AUTH_SUCCESS,
        actor_kind=kind,
        actor_id=owner_id,
        credential_id=UUID(credential_id),
        metadata={"assigned_clients": len(client_ids)} if kind == ActorKind.COACH else {},
    ))
    logger.debug(f"Resolved credential {credential_id} to {kind.value} {owner_id}")
    return actor
