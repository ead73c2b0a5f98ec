"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from app.api import router as api_router
from app.core import audit


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Flush queued audit writes on shutdown."""
    yield
    audit.shutdown(wait=True)


app = FastAPI(
    title="Coach Retrieval Engine",
    description="Multi-tenant, access-controlled semantic retrieval over coaching documents",
    version="0.1.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "ok"}, status_code=200)


# Include v1 API router
app.include_router(api_router, prefix="/v1", tags=["v1"])
