# src/govvault/api/structured_logging.py
from __future__ import annotations

import logging
import os
import time
import uuid
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from govvault.runtime.vault_logging import log_event


def configure_structured_logging(level_name: Optional[str] = None) -> None:
    """Configure stdlib logging for JSONL output (stdout).

    Level from the argument, else GOVVAULT_LOG_LEVEL (default INFO). Safe to call twice.
    """
    raw = level_name or os.environ.get("GOVVAULT_LOG_LEVEL") or "INFO"
    level = getattr(logging, raw.strip().upper(), logging.INFO)

    root = logging.getLogger()
    if getattr(root, "_govvault_configured", False):  # type: ignore[attr-defined]
        root.setLevel(level)
        return

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))

    root.handlers = [handler]
    root.setLevel(level)
    setattr(root, "_govvault_configured", True)  # type: ignore[attr-defined]


def vault_op_for_path(method: str, path: str) -> Optional[str]:
    """Name the vault operation a request maps to.

    POST /v1/vault/deposit -> "deposit", POST /v1/admin/pause -> "admin.pause".
    Reads and non-vault routes map to None.
    """
    if method.upper() != "POST":
        return None
    parts = [p for p in path.split("/") if p]
    if len(parts) != 3 or parts[0] != "v1":
        return None
    if parts[1] == "vault":
        return parts[2]
    if parts[1] == "admin":
        return f"admin.{parts[2]}"
    return None


class RequestLogMiddleware(BaseHTTPMiddleware):
    """One `http_request` event per request.

    Records the calling account (from the caller header), the vault op the route
    maps to, and the rejection code the error handlers leave on request.state.
    GOVVAULT_LOG_REQUESTS=0 disables it.
    """

    def __init__(self, app, *, caller_header: str = "x-vault-account") -> None:
        super().__init__(app)
        raw = (os.environ.get("GOVVAULT_LOG_REQUESTS") or "1").strip().lower()
        self._enabled = raw not in {"0", "false", "no", "n", "off"}
        self._caller_header = caller_header.lower()
        self._logger = logging.getLogger("govvault.http")

    async def dispatch(self, request: Request, call_next):
        if not self._enabled:
            return await call_next(request)

        started = time.monotonic()
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id

        status = 500
        err: Optional[str] = None
        response: Optional[Response] = None

        try:
            response = await call_next(request)
            status = int(getattr(response, "status_code", 200) or 200)
            return response
        except Exception as e:
            err = type(e).__name__
            raise
        finally:
            dur_ms = int((time.monotonic() - started) * 1000)
            path = str(request.url.path or "")
            log_event(
                self._logger,
                "http_request",
                level=logging.WARNING if status >= 500 else logging.INFO,
                request_id=request_id,
                method=request.method,
                path=path,
                op=vault_op_for_path(request.method, path),
                caller=(request.headers.get(self._caller_header) or "").strip() or None,
                status=status,
                duration_ms=dur_ms,
                error=getattr(request.state, "error_code", None) or err,
            )
            if response is not None:
                response.headers.setdefault("x-request-id", request_id)
