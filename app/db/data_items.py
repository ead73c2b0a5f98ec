"""Database operations for data items and their chunks (ingestion side)."""

from typing import Any
from uuid import UUID

from app.core.logging import get_logger
from app.db.supabase_client import get_supabase

logger = get_logger(__name__)


def insert_data_item(data: dict[str, Any], request_id: UUID) -> dict[str, Any]:
    """
    Insert a validated data item.

    Args:
        data: Row payload (ownership, visibility, content, metadata)
        request_id: Request tracking UUID

    Returns:
        Inserted data item row as dict

    Raises:
        Exception: If database operation fails
    """
    supabase = get_supabase()

    try:
        response = supabase.table("data_items").insert(data).execute()

        if not response.data:
            raise ValueError("No data returned from insert_data_item")

        item = response.data[0]
        logger.info(
            f"Inserted data item {item['id']} ({data.get('data_type')})",
            extra={"request_id": str(request_id), "data_item_id": item["id"]},
        )
        return item

    except Exception as e:
        logger.error(f"Failed to insert data item: {e}", extra={"request_id": str(request_id)})
        raise


def insert_chunks(
    data_item_id: UUID,
    chunks: list[dict[str, Any]],
    embeddings: list[list[float]],
    request_id: UUID,
) -> list[dict[str, Any]]:
    """
    Insert chunks with embeddings for a data item.

    Args:
        data_item_id: Parent data item UUID
        chunks: List of chunk dicts with chunk_index, content, start_char, end_char
        embeddings: List of embedding vectors (same length as chunks)
        request_id: Request tracking UUID

    Returns:
        List of inserted chunk rows

    Raises:
        ValueError: If chunks and embeddings length mismatch
        Exception: If database operation fails
    """
    if len(chunks) != len(embeddings):
        raise ValueError(
            f"Chunks count ({len(chunks)}) must match embeddings count ({len(embeddings)})"
        )

    supabase = get_supabase()

    try:
        chunk_records = []
        for chunk, embedding in zip(chunks, embeddings, strict=True):
            chunk_records.append(
                {
                    "data_item_id": str(data_item_id),
                    "chunk_index": chunk["chunk_index"],
                    "content": chunk["content"],
                    "embedding": embedding,
                    "metadata": {
                        "start_char": chunk["start_char"],
                        "end_char": chunk["end_char"],
                        **(chunk.get("metadata") or {}),
                    },
                }
            )

        response = supabase.table("data_chunks").insert(chunk_records).execute()

        if not response.data:
            raise ValueError("No data returned from insert_chunks")

        logger.info(
            f"Inserted {len(response.data)} chunks for data item {data_item_id}",
            extra={"request_id": str(request_id), "data_item_id": str(data_item_id)},
        )
        return response.data

    except Exception as e:
        logger.error(
            f"Failed to insert chunks: {e}",
            extra={"request_id": str(request_id), "data_item_id": str(data_item_id)},
        )
        raise


def delete_data_item(data_item_id: UUID) -> None:
    """Remove a data item whose chunks could not be stored (chunks cascade)."""
    supabase = get_supabase()
    supabase.table("data_items").delete().eq("id", str(data_item_id)).execute()


def list_client_items_scoped(params: dict[str, Any]) -> list[dict[str, Any]]:
    """
    Run the ``list_client_items_scoped`` RPC.

    Returns one client's data items that pass the caller's scope predicate,
    newest session first.

    Args:
        params: RPC parameters (target_client_id, match_count, filter_* and
            scope_* values)

    Returns:
        List of data item rows including raw_content
    """
    supabase = get_supabase()

    response = supabase.rpc("list_client_items_scoped", params).execute()
    return response.data or []
