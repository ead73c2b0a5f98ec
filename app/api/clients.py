"""Client timeline endpoint."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.auth_middleware import get_current_actor
from app.core.errors import RetrievalError
from app.core.identity import Actor
from app.core.logging import get_logger
from app.core.schemas_search import ClientTimelineResponse
from app.core.timeline import client_timeline

logger = get_logger(__name__)

router = APIRouter()


@router.get("/clients/{client_id}/timeline", response_model=ClientTimelineResponse)
async def get_client_timeline(
    client_id: UUID,
    types: str | None = Query(default=None, description="Comma-separated data types"),
    date_from: datetime | None = Query(default=None),
    date_to: datetime | None = Query(default=None),
    limit: int | None = Query(default=None),
    actor: Actor = Depends(get_current_actor),
) -> ClientTimelineResponse:
    """
    Chronological data items for a client the caller may address.

    Clients outside the caller's scope are reported as not found.

    Raises:
        HTTPException: 404 when the client is outside the caller's scope,
            422 for malformed filters, 503 when the store is unavailable
    """
    type_list = [t.strip() for t in types.split(",") if t.strip()] if types else None

    try:
        response = await client_timeline(
            actor, client_id, types=type_list, date_from=date_from, date_to=date_to, limit=limit
        )

    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    except RetrievalError as e:
        logger.warning(f"Timeline failed: {e}")
        if e.retryable:
            raise HTTPException(
                status_code=503,
                detail="Timeline temporarily unavailable",
                headers={"Retry-After": "1"},
            ) from e
        raise HTTPException(status_code=500, detail="Timeline failed") from e

    except Exception as e:
        logger.exception("Timeline failed")
        raise HTTPException(status_code=500, detail="Timeline failed") from e

    if response is None:
        raise HTTPException(status_code=404, detail="Not found")
    return response
