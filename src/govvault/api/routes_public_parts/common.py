from __future__ import annotations

from typing import Any, Dict

from fastapi import Request

from govvault.api.errors import ApiError

Json = Dict[str, Any]


def _vault(request: Request):
    v = getattr(request.app.state, "vault", None)
    if v is None:
        raise ApiError.internal("not_ready", "vault not attached to app.state", {})
    return v


def _caller(request: Request) -> str:
    """Caller identity from the gateway-set header (see ApiConfig.caller_header)."""
    cfg = getattr(request.app.state, "cfg", None)
    header = getattr(cfg, "caller_header", "") or "x-vault-account"
    caller = (request.headers.get(header) or "").strip()
    if not caller:
        raise ApiError.forbidden("missing_caller", f"missing {header} header", {"header": header})
    return caller


def _int_param(v: Any, default: int) -> int:
    """Parse an int-ish query param safely."""
    if v is None:
        return int(default)
    try:
        s = str(v).strip()
        if s == "":
            return int(default)
        return int(s)
    except Exception:
        return int(default)
