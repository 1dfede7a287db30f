from __future__ import annotations

from fastapi import APIRouter, Request

from govvault.api.routes_public_parts.common import _vault

router = APIRouter()


@router.get("/accounts/{account}")
def v1_account_get(account: str, request: Request):
    v = _vault(request)
    rec = v.get_account(account)
    return {
        "ok": True,
        "account": account,
        "state": rec.to_json(),
        "total_balance": rec.total_balance,
        "voting_power": v.get_voting_power(account),
    }


@router.get("/accounts/{account}/balance")
def v1_account_balance(account: str, request: Request):
    v = _vault(request)
    rec = v.get_account(account)
    return {
        "ok": True,
        "account": account,
        "balance_a": rec.balance_a,
        "balance_b": rec.balance_b,
        "total_balance": rec.total_balance,
    }


@router.get("/accounts/{account}/voting-power")
def v1_account_voting_power(account: str, request: Request):
    v = _vault(request)
    return {"ok": True, "account": account, "voting_power": v.get_voting_power(account), "as_of": v.now()}
