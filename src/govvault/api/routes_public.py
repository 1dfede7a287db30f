# src/govvault/api/routes_public.py
from __future__ import annotations

from fastapi import APIRouter

from govvault.api.routes_public_parts.accounts import router as accounts_router
from govvault.api.routes_public_parts.admin import router as admin_router
from govvault.api.routes_public_parts.events import router as events_router
from govvault.api.routes_public_parts.health import router as health_router
from govvault.api.routes_public_parts.metrics import router as metrics_router
from govvault.api.routes_public_parts.vault_ops import router as vault_ops_router

public_router = APIRouter()

# Versioned API surface
public_router.include_router(health_router, prefix="", tags=["health"])
public_router.include_router(accounts_router, prefix="/v1", tags=["accounts"])
public_router.include_router(vault_ops_router, prefix="/v1", tags=["vault"])
public_router.include_router(admin_router, prefix="/v1", tags=["admin"])
public_router.include_router(events_router, prefix="/v1", tags=["events"])

# Ops
public_router.include_router(metrics_router, prefix="/v1", tags=["metrics"])
