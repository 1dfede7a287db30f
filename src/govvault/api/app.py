from __future__ import annotations

import os
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from govvault.api.config import load_api_config
from govvault.api.errors import ApiError
from govvault.api.routes_public import public_router
from govvault.api.structured_logging import RequestLogMiddleware
from govvault.runtime.errors import VaultError
from govvault.runtime.vault_boot import build_vault as _build_vault
from govvault.runtime.vault_config import VaultConfig, load_vault_config


def build_vault(cfg: Optional[VaultConfig] = None):
    """Build the Vault for API runtime.

    This wrapper exists so tests can monkeypatch `govvault.api.app.build_vault`
    without reaching into runtime modules.
    """
    return _build_vault(cfg)


def _parse_cors_origins() -> List[str]:
    """Parse CORS origins with production-safe defaults.

    Policy:
      - If GOVVAULT_CORS_ORIGINS is unset/empty -> CORS disabled (fail-closed)
      - Wildcard "*" is rejected in GOVVAULT_MODE=prod
    """
    raw = os.environ.get("GOVVAULT_CORS_ORIGINS", "").strip()
    mode = os.environ.get("GOVVAULT_MODE", "prod").strip().lower()

    if not raw:
        return []

    origins = [o.strip() for o in raw.split(",") if o.strip()]

    if "*" in origins:
        if mode == "prod":
            raise RuntimeError(
                "Unsafe CORS configuration: wildcard '*' not allowed in production. "
                "Set explicit origins in GOVVAULT_CORS_ORIGINS."
            )
        return ["*"]

    return origins


async def _api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    request.state.error_code = exc.code
    return JSONResponse(status_code=exc.status_code, content=exc.to_json())


async def _vault_error_handler(request: Request, exc: VaultError) -> JSONResponse:
    err = ApiError.from_vault_error(exc)
    request.state.error_code = err.code
    return JSONResponse(status_code=err.status_code, content=err.to_json())


def create_app(*, boot_runtime: bool = True) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): load vault config + attach the vault
      - False: keep lightweight for unit tests / import-time validation
    """
    mode = os.environ.get("GOVVAULT_MODE", "prod").strip().lower()

    # Disable docs in production.
    if mode == "prod":
        app = FastAPI(title="govvault API", docs_url=None, redoc_url=None, openapi_url=None)
    else:
        app = FastAPI(title="govvault API")

    app.state.cfg = load_api_config()

    if boot_runtime:
        vault_cfg = load_vault_config()
        app.state.vault_cfg = vault_cfg
        app.state.vault = build_vault(vault_cfg)
    else:
        app.state.vault_cfg = None
        app.state.vault = None

    app.add_exception_handler(ApiError, _api_error_handler)
    app.add_exception_handler(VaultError, _vault_error_handler)

    app.add_middleware(RequestLogMiddleware, caller_header=app.state.cfg.caller_header)

    cors_origins = _parse_cors_origins()
    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Content-Type", app.state.cfg.caller_header],
        )

    app.include_router(public_router)

    return app
