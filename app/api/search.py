"""Scoped search and data type discovery endpoints."""

import uuid

from fastapi import APIRouter, Depends, HTTPException

from app.core.auth_middleware import get_current_actor
from app.core.data_types import list_data_types
from app.core.errors import EmbeddingRejectedError, RetrievalError
from app.core.identity import Actor
from app.core.logging import get_logger
from app.core.retrieval import search as run_search
from app.core.schemas_data_items import DataTypeInfo, DataTypeListResponse
from app.core.schemas_search import SearchRequest, SearchResponse

logger = get_logger(__name__)

router = APIRouter()


@router.post("/search", response_model=SearchResponse)
async def search(
    request: SearchRequest,
    actor: Actor = Depends(get_current_actor),
) -> SearchResponse:
    """
    Semantic search restricted to the caller's scope.

    Anonymous callers are allowed and only ever see public items. Requested
    filters outside the caller's scope narrow the result set to empty; they
    are reported in ``filters_applied.narrowed``, never as an error.

    Raises:
        HTTPException: 422 for malformed input, 400 when the embedding
            service refuses the query, 503 for retryable failures
    """
    request_id = uuid.uuid4()

    try:
        return await run_search(actor, request, request_id=request_id)

    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    except EmbeddingRejectedError as e:
        raise HTTPException(status_code=400, detail="Query could not be embedded") from e

    except RetrievalError as e:
        logger.warning(f"Search failed: {e}", extra={"request_id": str(request_id)})
        if e.retryable:
            raise HTTPException(
                status_code=503,
                detail="Search temporarily unavailable",
                headers={"Retry-After": "1"},
            ) from e
        raise HTTPException(status_code=500, detail="Search failed") from e

    except Exception as e:
        logger.exception("Search failed", extra={"request_id": str(request_id)})
        raise HTTPException(status_code=500, detail="Search failed") from e


@router.get("/data-types", response_model=DataTypeListResponse)
async def get_data_types() -> DataTypeListResponse:
    """List registered data types with their default visibility."""
    return DataTypeListResponse(
        data_types=[
            DataTypeInfo(
                name=handler.name,
                description=handler.description,
                default_visibility=handler.default_visibility,
                aliases=list(handler.aliases),
            )
            for handler in list_data_types()
        ]
    )
