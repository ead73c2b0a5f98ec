"""Authentication dependencies for FastAPI."""

import asyncio
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core import identity
from app.core.errors import AuthenticationError, StoreUnavailableError
from app.core.identity import Actor
from app.core.logging import get_logger

logger = get_logger(__name__)

# HTTP Bearer scheme for Authorization header
security = HTTPBearer(auto_error=False)


def _not_authenticated() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")


async def get_current_actor(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
) -> Actor:
    """
    Resolve the caller for this request.

    Supports two headers carrying the same API key:
    1. Authorization: Bearer <key>
    2. X-API-Key: <key>

    No credential at all yields the anonymous actor. A credential that cannot
    be resolved is a generic 401; the reason only reaches the audit log.
    Resolution runs on every request and its result lives only as long as
    the request.
    """
    raw_key = x_api_key or (credentials.credentials if credentials else None)

    if not raw_key:
        # An Authorization header that is not a Bearer token is a bad credential
        if request.headers.get("Authorization"):
            raise _not_authenticated()
        return Actor.anonymous()

    try:
        return await asyncio.to_thread(identity.resolve, raw_key)
    except AuthenticationError:
        raise _not_authenticated() from None
    except StoreUnavailableError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service temporarily unavailable",
            headers={"Retry-After": "1"},
        ) from e


async def require_coach_or_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    """Require a coach or admin. Other actors see 404."""
    if not (actor.is_coach or actor.is_admin):
        raise _not_found()
    return actor


async def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    """Require an admin. Other actors see 404."""
    if not actor.is_admin:
        raise _not_found()
    return actor
