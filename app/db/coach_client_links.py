"""Database operations for coach_client_links (authoritative coach scope)."""

from uuid import UUID

from app.core.logging import get_logger
from app.db.supabase_client import get_supabase

logger = get_logger(__name__)


def list_client_ids_for_coach(coach_id: UUID) -> list[str]:
    """Client IDs currently assigned to a coach."""
    supabase = get_supabase()
    result = (
        supabase.table("coach_client_links")
        .select("client_id")
        .eq("coach_id", str(coach_id))
        .execute()
    )
    return [row["client_id"] for row in (result.data or []) if row.get("client_id")]


def create_link(coach_id: UUID, client_id: UUID) -> dict:
    """Assign a client to a coach (idempotent on the pair)."""
    supabase = get_supabase()
    result = (
        supabase.table("coach_client_links")
        .upsert(
            {"coach_id": str(coach_id), "client_id": str(client_id)},
            on_conflict="coach_id,client_id",
        )
        .execute()
    )
    if not result.data:
        raise ValueError("No data returned from create_link")

    logger.info(f"Linked client {client_id} to coach {coach_id}")
    return result.data[0]


def delete_link(coach_id: UUID, client_id: UUID) -> bool:
    """Remove an assignment. Returns True if a link existed."""
    supabase = get_supabase()
    result = (
        supabase.table("coach_client_links")
        .delete()
        .eq("coach_id", str(coach_id))
        .eq("client_id", str(client_id))
        .execute()
    )
    removed = bool(result.data)
    if removed:
        logger.info(f"Unlinked client {client_id} from coach {coach_id}")
    return removed
