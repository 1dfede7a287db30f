from __future__ import annotations

from dataclasses import dataclass, field, replace
import copy
from typing import Any, Dict

from govvault.ledger.constants import INSTRUMENT_A, INSTRUMENT_B


Json = Dict[str, Any]


def _as_int(v: Any, default: int = 0) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


@dataclass(frozen=True, slots=True)
class AccountRecord:
    """
    One participant's vault position.

    Records spring into existence zero-valued on first reference and are never
    deleted; a zero balance is a valid terminal state.
    """

    account: str
    balance_a: int = 0
    balance_b: int = 0
    last_deposit_time: int = 0
    locked: bool = False

    @property
    def total_balance(self) -> int:
        return int(self.balance_a) + int(self.balance_b)

    def balance_of(self, instrument: str) -> int:
        if instrument == INSTRUMENT_A:
            return int(self.balance_a)
        if instrument == INSTRUMENT_B:
            return int(self.balance_b)
        raise KeyError(instrument)

    def with_balance(self, instrument: str, value: int) -> "AccountRecord":
        if instrument == INSTRUMENT_A:
            return replace(self, balance_a=int(value))
        if instrument == INSTRUMENT_B:
            return replace(self, balance_b=int(value))
        raise KeyError(instrument)

    def to_json(self) -> Json:
        return {
            "account": self.account,
            "balance_a": int(self.balance_a),
            "balance_b": int(self.balance_b),
            "last_deposit_time": int(self.last_deposit_time),
            "locked": bool(self.locked),
        }

    @classmethod
    def empty(cls, account: str) -> "AccountRecord":
        return cls(account=str(account))


@dataclass(frozen=True, slots=True)
class VaultParams:
    """Process-wide configuration record, mutated only by the admin gate."""

    min_deposit_amount: int
    max_deposit_amount: int
    voting_power_cap: int
    paused: bool = False
    owner: str = ""
    voting_authority: str = ""

    def to_json(self) -> Json:
        return {
            "min_deposit_amount": int(self.min_deposit_amount),
            "max_deposit_amount": int(self.max_deposit_amount),
            "voting_power_cap": int(self.voting_power_cap),
            "paused": bool(self.paused),
            "owner": self.owner,
            "voting_authority": self.voting_authority,
        }

    @classmethod
    def from_json(cls, raw: Json) -> "VaultParams":
        return cls(
            min_deposit_amount=_as_int(raw.get("min_deposit_amount"), 0),
            max_deposit_amount=_as_int(raw.get("max_deposit_amount"), 0),
            voting_power_cap=_as_int(raw.get("voting_power_cap"), 0),
            paused=bool(raw.get("paused", False)),
            owner=str(raw.get("owner") or "").strip(),
            voting_authority=str(raw.get("voting_authority") or "").strip(),
        )


@dataclass(frozen=True, slots=True)
class VaultView:
    """
    Immutable read-only snapshot of the whole vault, used by the API layer.
    """

    accounts: Dict[str, AccountRecord] = field(default_factory=dict)
    params: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_snapshot(cls, snap: Json) -> "VaultView":
        accounts: Dict[str, AccountRecord] = {}
        raw_accounts = snap.get("accounts")
        if isinstance(raw_accounts, dict):
            for acct_id, rec in raw_accounts.items():
                if not isinstance(rec, dict):
                    continue
                accounts[str(acct_id)] = AccountRecord(
                    account=str(acct_id),
                    balance_a=_as_int(rec.get("balance_a"), 0),
                    balance_b=_as_int(rec.get("balance_b"), 0),
                    last_deposit_time=_as_int(rec.get("last_deposit_time"), 0),
                    locked=bool(rec.get("locked", False)),
                )
        params = snap.get("params")
        return cls(
            accounts=accounts,
            params=copy.deepcopy(params) if isinstance(params, dict) else {},
        )

    def get_account(self, account_id: str) -> AccountRecord:
        rec = self.accounts.get(account_id)
        return rec if rec is not None else AccountRecord.empty(account_id)

    def total_value_locked(self) -> Dict[str, int]:
        a = sum(r.balance_a for r in self.accounts.values())
        b = sum(r.balance_b for r in self.accounts.values())
        return {INSTRUMENT_A: int(a), INSTRUMENT_B: int(b)}

    def get_param(self, key: str, default: Any = None) -> Any:
        try:
            return self.params.get(key, default)
        except Exception:
            return default
