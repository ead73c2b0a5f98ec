"""Database operations for clients table."""

from uuid import UUID

from app.core.logging import get_logger
from app.db.supabase_client import get_supabase

logger = get_logger(__name__)


def get_client(client_id: UUID) -> dict | None:
    """Get a single client by ID."""
    supabase = get_supabase()

    response = (
        supabase.table("clients")
        .select("id, organization_id, primary_coach_id")
        .eq("id", str(client_id))
        .execute()
    )

    return response.data[0] if response.data else None


def get_client_organizations(client_ids: list[str]) -> dict[str, str | None]:
    """
    Organization of each client in one query.

    Returns:
        Dict mapping client_id -> organization_id (None when unaffiliated)
    """
    if not client_ids:
        return {}

    supabase = get_supabase()
    response = (
        supabase.table("clients")
        .select("id, organization_id")
        .in_("id", client_ids)
        .execute()
    )

    return {row["id"]: row.get("organization_id") for row in (response.data or [])}
