"""Scoped vector search over data chunks."""

from typing import Any

from app.core.logging import get_logger
from app.db.supabase_client import get_supabase

logger = get_logger(__name__)


def match_data_chunks_scoped(params: dict[str, Any]) -> list[dict[str, Any]]:
    """
    Run the ``match_data_chunks_scoped`` RPC.

    The function applies the caller's scope predicate, the dimension filters
    and the similarity threshold in one SQL statement, ordered by similarity
    then item recency.

    Args:
        params: RPC parameters (query embedding, threshold, count, filter_*
            and scope_* values)

    Returns:
        List of matching chunk rows joined with their data item fields

    Raises:
        Exception: If the RPC call fails
    """
    supabase = get_supabase()

    response = supabase.rpc("match_data_chunks_scoped", params).execute()

    if not response.data:
        logger.debug("No matching chunks found")
        return []

    logger.debug(
        f"Store returned {len(response.data)} candidate chunks",
        extra={"match_count": params.get("match_count")},
    )
    return response.data
