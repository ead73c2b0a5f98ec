"""OpenAI embeddings generation with validation and transient-failure retry."""

import asyncio
import time

import numpy as np
from openai import (
    APIConnectionError,
    APITimeoutError,
    BadRequestError,
    InternalServerError,
    OpenAI,
    RateLimitError,
)

from app.core.config import get_settings
from app.core.errors import EmbeddingRejectedError, EmbeddingUnavailableError, RetrievalError
from app.core.logging import get_logger

logger = get_logger(__name__)

_TRANSIENT_ERRORS = (APIConnectionError, APITimeoutError, InternalServerError, RateLimitError)
_RETRY_DELAY_SECONDS = 0.5


def _get_client() -> OpenAI:
    """Get OpenAI client instance (SDK retries disabled; retried here)."""
    settings = get_settings()
    return OpenAI(
        api_key=settings.OPENAI_API_KEY,
        timeout=settings.EMBEDDING_TIMEOUT_SECONDS,
        max_retries=0,
    )


def embed_texts(texts: list[str]) -> list[list[float]]:
    """
    Generate embeddings for a list of texts using OpenAI.

    Transient failures (timeouts, connection errors, rate limits, 5xx) are
    retried at most EMBEDDING_MAX_RETRIES times.

    Args:
        texts: List of text strings to embed

    Returns:
        List of embedding vectors (each vector is list of floats)

    Raises:
        RetrievalError: If embedding dimension doesn't match EMBEDDING_DIM (not retryable)
        EmbeddingUnavailableError: If the service stays unavailable
        EmbeddingRejectedError: If the service refuses the input
    """
    if not texts:
        return []

    settings = get_settings()
    client = _get_client()
    attempts = settings.EMBEDDING_MAX_RETRIES + 1

    for attempt in range(attempts):
        try:
            response = client.embeddings.create(
                model=settings.EMBEDDING_MODEL,
                input=texts,
            )
            break
        except _TRANSIENT_ERRORS as e:
            if attempt + 1 < attempts:
                logger.warning(f"Embedding attempt {attempt + 1} failed: {e}. Retrying")
                time.sleep(_RETRY_DELAY_SECONDS)
                continue
            logger.error(f"Embedding service unavailable after {attempts} attempts: {e}")
            raise EmbeddingUnavailableError("Embedding service unavailable") from e
        except BadRequestError as e:
            logger.warning(f"Embedding input rejected: {e}")
            raise EmbeddingRejectedError("Embedding input rejected") from e

    embeddings = []
    for i, embedding_obj in enumerate(response.data):
        embedding = embedding_obj.embedding

        if len(embedding) != settings.EMBEDDING_DIM:
            raise RetrievalError(
                f"Embedding dimension mismatch for text {i}: "
                f"expected {settings.EMBEDDING_DIM}, got {len(embedding)}",
                retryable=False,
            )

        embeddings.append(embedding)

    logger.info(
        f"Generated {len(embeddings)} embeddings using {settings.EMBEDDING_MODEL}",
        extra={"model": settings.EMBEDDING_MODEL, "count": len(embeddings)},
    )

    return embeddings


async def embed_texts_async(texts: list[str]) -> list[list[float]]:
    """Async wrapper around embed_texts using thread pool."""
    return await asyncio.to_thread(embed_texts, texts)


def normalize_vector(vector: list[float]) -> list[float]:
    """
    L2-normalize a vector so cosine similarity stays in [-1, 1].

    Raises:
        EmbeddingRejectedError: If the vector is empty, non-finite or all zeros
    """
    arr = np.asarray(vector, dtype=np.float64)
    if arr.size == 0 or not np.all(np.isfinite(arr)):
        raise EmbeddingRejectedError("Embedding vector is empty or non-finite")
    norm = float(np.linalg.norm(arr))
    if norm == 0.0:
        raise EmbeddingRejectedError("Embedding vector has zero norm")
    return (arr / norm).tolist()


async def embed_query(text: str) -> list[float]:
    """Embed a single search query and normalize it."""
    vectors = await embed_texts_async([text])
    return normalize_vector(vectors[0])
