from __future__ import annotations

import time
from typing import Any, Optional

from fastapi import APIRouter, Request

router = APIRouter()


def _now_ms() -> int:
    return int(time.time() * 1000)


def _try_params(v: Any) -> Optional[dict[str, Any]]:
    if v is None:
        return None
    try:
        return v.get_params().to_json()
    except Exception:
        return None


def _health_payload(request: Request) -> dict[str, object]:
    # health must never crash; best-effort telemetry only
    v = getattr(request.app.state, "vault", None)
    params = _try_params(v)
    cfg = getattr(request.app.state, "cfg", None)

    return {
        "ok": True,
        "service": "govvault",
        "version": "v1",
        "ts_ms": _now_ms(),
        "mode": getattr(cfg, "mode", None),
        "vault": {
            "attached": v is not None,
            "paused": params.get("paused") if isinstance(params, dict) else None,
        },
    }


@router.get("/v1/health")
def v1_health(request: Request) -> dict[str, object]:
    return _health_payload(request)


@router.get("/health")
def health(request: Request) -> dict[str, object]:
    # unversioned alias for ops tooling
    return _health_payload(request)


@router.get("/readyz")
def readyz(request: Request) -> dict[str, object]:
    v = getattr(request.app.state, "vault", None)
    ready = _try_params(v) is not None
    return {"ok": bool(ready), "service": "govvault", "version": "v1", "ts_ms": _now_ms()}
