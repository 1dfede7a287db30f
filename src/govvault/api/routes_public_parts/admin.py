from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from govvault.api.routes_public_parts.common import _caller, _vault
from govvault.api.schemas import OwnerRequest, ParamValueRequest, VotingAuthorityRequest

router = APIRouter()

Json = Dict[str, Any]

# Owner-only; the vault performs the authorization check.


@router.post("/admin/min-deposit")
def admin_min_deposit(body: ParamValueRequest, request: Request) -> Json:
    return {"ok": True, **_vault(request).set_min_deposit_amount(_caller(request), body.value)}


@router.post("/admin/max-deposit")
def admin_max_deposit(body: ParamValueRequest, request: Request) -> Json:
    return {"ok": True, **_vault(request).set_max_deposit_amount(_caller(request), body.value)}


@router.post("/admin/voting-power-cap")
def admin_voting_power_cap(body: ParamValueRequest, request: Request) -> Json:
    return {"ok": True, **_vault(request).set_voting_power_cap(_caller(request), body.value)}


@router.post("/admin/pause")
def admin_pause(request: Request) -> Json:
    return {"ok": True, **_vault(request).pause(_caller(request))}


@router.post("/admin/unpause")
def admin_unpause(request: Request) -> Json:
    return {"ok": True, **_vault(request).unpause(_caller(request))}


@router.post("/admin/voting-authority")
def admin_voting_authority(body: VotingAuthorityRequest, request: Request) -> Json:
    return {"ok": True, **_vault(request).set_voting_authority(_caller(request), body.authority)}


@router.post("/admin/owner")
def admin_owner(body: OwnerRequest, request: Request) -> Json:
    return {"ok": True, **_vault(request).transfer_ownership(_caller(request), body.owner)}
