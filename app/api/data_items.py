"""Data item ingestion endpoint."""

from fastapi import APIRouter, Depends, HTTPException

from app.core.auth_middleware import require_coach_or_admin
from app.core.errors import DataItemValidationError, EmbeddingRejectedError, RetrievalError
from app.core.identity import Actor
from app.core.ingestion import create_data_item
from app.core.logging import get_logger
from app.core.schemas_data_items import DataItemCreate, DataItemResponse

logger = get_logger(__name__)

router = APIRouter()


@router.post("/data-items", response_model=DataItemResponse, status_code=201)
def ingest_data_item(
    request: DataItemCreate,
    actor: Actor = Depends(require_coach_or_admin),
) -> DataItemResponse:
    """
    Store a document: validate ownership, chunk, embed, and store chunks.

    Raises:
        HTTPException: 422 when the item violates the ingestion contract,
            503 when embedding is temporarily unavailable
    """
    try:
        return create_data_item(actor, request)

    except DataItemValidationError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    except EmbeddingRejectedError as e:
        raise HTTPException(status_code=400, detail="Content could not be embedded") from e

    except RetrievalError as e:
        if e.retryable:
            raise HTTPException(
                status_code=503,
                detail="Ingestion temporarily unavailable",
                headers={"Retry-After": "1"},
            ) from e
        raise HTTPException(status_code=500, detail="Ingestion failed") from e

    except Exception as e:
        logger.exception("Ingestion failed")
        raise HTTPException(status_code=500, detail="Ingestion failed") from e
