"""Database operations for API credentials (api_keys table)."""

from datetime import datetime, timezone
from uuid import UUID

from app.core.logging import get_logger
from app.db.supabase_client import get_supabase

logger = get_logger(__name__)

_SUMMARY_COLUMNS = (
    "id, key_prefix, name, coach_id, client_id, admin_id, is_revoked, "
    "expires_at, last_used_at, created_at"
)


def list_credentials_by_prefix(key_prefix: str) -> list[dict]:
    """
    Candidate credential records sharing a non-secret prefix.

    Revoked records are included so the resolver can tell a revoked key
    from an unknown one in the audit log.
    """
    supabase = get_supabase()
    result = (
        supabase.table("api_keys")
        .select("*")
        .eq("key_prefix", key_prefix)
        .execute()
    )
    return result.data or []


def create_credential(
    key_prefix: str,
    key_hash: str,
    coach_id: UUID | None = None,
    client_id: UUID | None = None,
    admin_id: UUID | None = None,
    name: str | None = None,
    expires_at: datetime | None = None,
) -> dict:
    """Insert a credential record. Returns the row without its hash."""
    supabase = get_supabase()

    data = {
        "key_prefix": key_prefix,
        "key_hash": key_hash,
        "coach_id": str(coach_id) if coach_id else None,
        "client_id": str(client_id) if client_id else None,
        "admin_id": str(admin_id) if admin_id else None,
        "is_revoked": False,
    }
    if name:
        data["name"] = name
    if expires_at:
        data["expires_at"] = expires_at.isoformat()

    result = supabase.table("api_keys").insert(data).execute()
    if not result.data:
        raise ValueError("No data returned from create_credential")

    row = dict(result.data[0])
    row.pop("key_hash", None)
    return row


def list_credentials(include_revoked: bool = True, limit: int = 200) -> list[dict]:
    """List credential records for administration (hash column excluded)."""
    supabase = get_supabase()
    query = supabase.table("api_keys").select(_SUMMARY_COLUMNS)

    if not include_revoked:
        query = query.eq("is_revoked", False)

    result = query.order("created_at", desc=True).limit(limit).execute()
    return result.data or []


def revoke_credential(credential_id: UUID) -> dict | None:
    """Soft-revoke a credential. The row is kept for audit history."""
    supabase = get_supabase()
    result = (
        supabase.table("api_keys")
        .update({"is_revoked": True, "revoked_at": datetime.now(timezone.utc).isoformat()})
        .eq("id", str(credential_id))
        .execute()
    )
    if not result.data:
        return None

    row = dict(result.data[0])
    row.pop("key_hash", None)
    return row


def touch_last_used(credential_id: UUID | str) -> None:
    """Update last_used_at. Best-effort: failures are logged, never raised."""
    try:
        supabase = get_supabase()
        supabase.table("api_keys").update(
            {"last_used_at": datetime.now(timezone.utc).isoformat()}
        ).eq("id", str(credential_id)).execute()
    except Exception as e:
        logger.warning(f"Failed to update last_used_at for credential {credential_id}: {e}")
