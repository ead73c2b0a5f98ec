"""API router for v1 endpoints."""

from fastapi import APIRouter

from app.api import admin, clients, data_items, search

router = APIRouter()

# Scoped search and data type discovery
router.include_router(search.router, tags=["search"])

# Client timeline (scoped like search)
router.include_router(clients.router, tags=["clients"])

# Ingestion (coach or admin)
router.include_router(data_items.router, tags=["data_items"])

# Administration (admin only)
router.include_router(admin.router, prefix="/admin", tags=["admin"])
