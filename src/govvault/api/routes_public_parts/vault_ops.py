from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from govvault.api.routes_public_parts.common import _caller, _vault
from govvault.api.schemas import LockRequest, TransferRequest

router = APIRouter()

Json = Dict[str, Any]


@router.post("/vault/deposit")
def vault_deposit(body: TransferRequest, request: Request) -> Json:
    res = _vault(request).deposit(_caller(request), body.amount, body.instrument)
    return {"ok": True, **res}


@router.post("/vault/withdraw")
def vault_withdraw(body: TransferRequest, request: Request) -> Json:
    res = _vault(request).withdraw(_caller(request), body.amount, body.instrument)
    return {"ok": True, **res}


@router.post("/vault/lock")
def vault_lock(body: LockRequest, request: Request) -> Json:
    """Voting-authority only: freeze withdrawals for `account`."""
    res = _vault(request).lock(_caller(request), body.account)
    return {"ok": True, **res}


@router.post("/vault/unlock")
def vault_unlock(body: LockRequest, request: Request) -> Json:
    res = _vault(request).unlock(_caller(request), body.account)
    return {"ok": True, **res}


@router.get("/vault/params")
def vault_params(request: Request) -> Json:
    return {"ok": True, "params": _vault(request).get_params().to_json()}


@router.get("/vault/summary")
def vault_summary(request: Request) -> Json:
    view = _vault(request).view()
    return {
        "ok": True,
        "accounts": len(view.accounts),
        "total_value_locked": view.total_value_locked(),
        "paused": bool(view.get_param("paused", False)),
    }
