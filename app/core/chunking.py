"""Character-window chunking for data items."""

from typing import Any


def _snap_to_whitespace(text: str, start: int, end: int) -> int:
    """Move a window end back to the last whitespace in its second half."""
    if end >= len(text) or text[end].isspace():
        return end
    cut = max(text.rfind(" ", start, end), text.rfind("\n", start, end))
    if cut > start + (end - start) // 2:
        return cut
    return end


def chunk_text(
    text: str,
    max_chars: int = 1200,
    overlap: int = 120,
    metadata: dict[str, Any] | None = None,
) -> list[dict[str, Any]]:
    """
    Split text into overlapping chunks.

    Windows are at most ``max_chars`` long and end on whitespace when one is
    available in the second half of the window, so words are not split.
    Consecutive windows share ``overlap`` characters.

    Args:
        text: Text to chunk
        max_chars: Maximum characters per chunk
        overlap: Number of characters to overlap between chunks
        metadata: Optional metadata to include in each chunk

    Returns:
        List of chunk dicts with chunk_index, content, start_char, end_char
        and metadata

    Raises:
        ValueError: If max_chars <= overlap
    """
    if max_chars <= overlap:
        raise ValueError(f"max_chars ({max_chars}) must be greater than overlap ({overlap})")

    if not text or not text.strip():
        return []

    chunks = []
    start = 0
    text_length = len(text)

    while start < text_length:
        end = _snap_to_whitespace(text, start, min(start + max_chars, text_length))
        content = text[start:end]

        if content.strip():
            chunks.append(
                {
                    "chunk_index": len(chunks),
                    "content": content,
                    "start_char": start,
                    "end_char": end,
                    "metadata": dict(metadata or {}),
                }
            )

        if end >= text_length:
            break

        # Always advance, even when the overlap would reach back past start
        start = max(end - overlap, start + 1)

    return chunks
