"""Pydantic request schemas for the vault HTTP API.

These exist only for HTTP input validation; the vault itself re-validates every
value it receives.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class TransferRequest(BaseModel):
    amount: int = Field(..., description="Amount in instrument base units")
    instrument: str = Field(..., description="Instrument selector, 'A' or 'B'")


class LockRequest(BaseModel):
    account: str = Field(..., description="Target account id")


class ParamValueRequest(BaseModel):
    value: int = Field(..., description="New parameter value")


class VotingAuthorityRequest(BaseModel):
    authority: str = Field(default="", description="Voting subsystem id; empty clears it")


class OwnerRequest(BaseModel):
    owner: str = Field(..., description="New owner id")
