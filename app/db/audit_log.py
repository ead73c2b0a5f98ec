"""Database operations for the append-only audit_log table.

Only insert and read exist here. Audit rows are never updated or deleted.
"""

from typing import Any

from app.core.logging import get_logger
from app.db.supabase_client import get_supabase

logger = get_logger(__name__)


def insert_audit_event(row: dict[str, Any]) -> None:
    """Append one audit row."""
    supabase = get_supabase()
    supabase.table("audit_log").insert(row).execute()


def list_audit_events(
    action: str | None = None,
    actor_id: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[dict], int]:
    """
    List audit rows, newest first.

    Returns:
        Tuple of (rows, total count)
    """
    supabase = get_supabase()
    query = supabase.table("audit_log").select("*", count="exact")

    if action:
        query = query.eq("action", action)
    if actor_id:
        query = query.eq("actor_id", actor_id)

    response = query.order("created_at", desc=True).range(offset, offset + limit - 1).execute()
    return response.data or [], response.count or 0
