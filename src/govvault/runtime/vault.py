# src/govvault/runtime/vault.py
from __future__ import annotations

import logging
import sqlite3
import time
from dataclasses import replace
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from govvault.ledger.constants import COOLDOWN_PERIOD_SECONDS, INSTRUMENTS
from govvault.ledger.state import AccountRecord, VaultParams, VaultView
from govvault.ledger.voting_power import compute_voting_power
from govvault.runtime import custody
from govvault.runtime.custody import CustodyInstrument
from govvault.runtime.errors import (
    CustodyTransferError,
    VaultAuthError,
    VaultError,
    VaultStateError,
    VaultValidationError,
)
from govvault.runtime.metrics import inc_counter, set_gauge
from govvault.runtime.reentrancy import ReentrancyGuard
from govvault.runtime.sqlite_db import SqliteVaultStore
from govvault.runtime.vault_logging import log_event

Json = Dict[str, Any]

log = logging.getLogger("govvault.vault")


def _system_clock() -> int:
    return int(time.time())


def _as_amount(v: Any) -> int:
    # bool is an int subclass; never accept it as an amount.
    if isinstance(v, bool):
        raise VaultValidationError("invalid_payload", "invalid_amount", {"amount": v})
    try:
        amt = int(v)
    except Exception:
        raise VaultValidationError("invalid_payload", "invalid_amount", {"amount": str(v)})
    if isinstance(v, float) and float(amt) != v:
        raise VaultValidationError("invalid_payload", "invalid_amount", {"amount": v})
    if amt <= 0:
        raise VaultValidationError("invalid_payload", "invalid_amount", {"amount": amt})
    return amt


def _as_account(v: Any, *, missing: VaultError) -> str:
    s = str(v).strip() if isinstance(v, (str, int)) and not isinstance(v, bool) else ""
    if not s:
        raise missing
    return s


class Vault:
    """Custodial balance ledger with time-weighted voting power.

    Ledger writes run inside SQLite write transactions, so a failure at any point
    (validation, custody transfer, commit) leaves the ledger exactly as it was.
    deposit/withdraw also hold the reentrancy guard for their whole duration,
    including the external custody call, so in-process callers are serialized
    and nested calls from a custody callback are rejected.
    """

    def __init__(
        self,
        *,
        store: SqliteVaultStore,
        instruments: Mapping[str, CustodyInstrument],
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        missing = [sel for sel in INSTRUMENTS if sel not in instruments]
        if missing:
            raise ValueError(f"instruments missing for selectors: {missing}")

        self._store = store
        self._db = store.db
        self._instruments: Dict[str, CustodyInstrument] = {sel: instruments[sel] for sel in INSTRUMENTS}
        self._clock = clock or _system_clock
        self._guard = ReentrancyGuard()

        if not self._store.has_params():
            raise ValueError("vault params are not initialized; call Vault.bootstrap() first")

    @classmethod
    def bootstrap(
        cls,
        *,
        store: SqliteVaultStore,
        instruments: Mapping[str, CustodyInstrument],
        params: VaultParams,
        clock: Optional[Callable[[], int]] = None,
    ) -> "Vault":
        """Create a vault, writing `params` only if the database has none yet."""
        if not params.owner:
            raise ValueError("initial params must name an owner")
        if int(params.min_deposit_amount) < 0 or int(params.min_deposit_amount) >= int(params.max_deposit_amount):
            raise ValueError("initial params must satisfy 0 <= min_deposit_amount < max_deposit_amount")
        if int(params.voting_power_cap) <= 0:
            raise ValueError("initial params must have voting_power_cap > 0")

        with store.db.write_tx() as con:
            row = con.execute("SELECT 1 FROM vault_params WHERE id=1;").fetchone()
            if row is None:
                store.save_params(con, params)
                log_event(log, "vault_params_initialized", **params.to_json())

        return cls(store=store, instruments=instruments, clock=clock)

    # ------------------------------------------------------------------
    # helpers

    def now(self) -> int:
        return int(self._clock())

    def _instrument(self, selector: Any) -> Tuple[str, CustodyInstrument]:
        sel = str(selector or "").strip().upper()
        inst = self._instruments.get(sel)
        if inst is None:
            raise VaultValidationError(
                "invalid_payload",
                "unknown_instrument",
                {"instrument": str(selector), "allowed": list(INSTRUMENTS)},
            )
        return sel, inst

    @staticmethod
    def _caller(caller: Any) -> str:
        return _as_account(caller, missing=VaultAuthError("forbidden", "missing_caller", {}))

    @staticmethod
    def _deny_if_paused(params: VaultParams, op: str) -> None:
        if params.paused:
            raise VaultStateError("invalid_state", "paused", {"op": op})

    @staticmethod
    def _require_owner(params: VaultParams, caller: str) -> None:
        if not params.owner or caller != params.owner:
            raise VaultAuthError("forbidden", "not_owner", {"caller": caller})

    @staticmethod
    def _require_voting_authority(params: VaultParams, caller: str) -> None:
        if not params.voting_authority or caller != params.voting_authority:
            raise VaultAuthError("forbidden", "not_voting_authority", {"caller": caller})

    def _emit(self, con: sqlite3.Connection, kind: str, account: str, payload: Json) -> int:
        return self._store.append_event(con, kind=kind, account=account, payload=payload)

    def _rejected(self, op: str, e: VaultError) -> None:
        inc_counter("vault_rejections_total", op=op, reason=e.reason)
        log_event(log, "vault_rejected", op=op, kind=e.kind, code=e.code, reason=e.reason, details=e.details)

    # ------------------------------------------------------------------
    # balance ledger

    def deposit(self, caller: Any, amount: Any, instrument: Any) -> Json:
        """Pull `amount` of `instrument` from `caller` into custody and credit it.

        The credit is written only after the pull-in succeeds. If the credit
        itself then fails to commit, the pulled amount is pushed back.
        """
        try:
            acct = self._caller(caller)
            amt = _as_amount(amount)
            sel, inst = self._instrument(instrument)
        except VaultError as e:
            self._rejected("deposit", e)
            raise

        pulled = False
        try:
            with self._guard.enter("deposit"):
                try:
                    with self._db.write_tx() as con:
                        params = self._store.load_params(con)
                        self._deny_if_paused(params, "deposit")

                        if amt < int(params.min_deposit_amount):
                            raise VaultValidationError(
                                "invalid_payload",
                                "below_min_deposit",
                                {"amount": amt, "min_deposit_amount": int(params.min_deposit_amount)},
                            )
                        if amt > int(params.max_deposit_amount):
                            raise VaultValidationError(
                                "invalid_payload",
                                "above_max_deposit",
                                {"amount": amt, "max_deposit_amount": int(params.max_deposit_amount)},
                            )

                        rec = self._store.load_account(con, acct)
                        new_balance = rec.balance_of(sel) + amt
                        if new_balance > int(params.max_deposit_amount):
                            raise VaultValidationError(
                                "invalid_payload",
                                "exceeds_max_balance",
                                {
                                    "balance": rec.balance_of(sel),
                                    "amount": amt,
                                    "max_deposit_amount": int(params.max_deposit_amount),
                                },
                            )

                        custody.pull_in(inst, acct, amt)
                        pulled = True

                        now = self.now()
                        updated = replace(rec.with_balance(sel, new_balance), last_deposit_time=now)
                        self._store.save_account(con, updated)
                        seq = self._emit(con, "deposit", acct, {"account": acct, "amount": amt, "instrument": sel})
                except VaultError:
                    raise
                except Exception:
                    if pulled:
                        self._refund(inst, acct, amt, sel)
                    raise
        except VaultError as e:
            self._rejected("deposit", e)
            raise

        inc_counter("vault_deposits_total", instrument=sel)
        inc_counter("vault_deposited_amount_total", amt, instrument=sel)
        log_event(log, "vault_deposit", account=acct, amount=amt, instrument=sel, balance=new_balance, seq=seq)
        return {
            "applied": "DEPOSIT",
            "account": acct,
            "instrument": sel,
            "amount": amt,
            "balance": new_balance,
            "last_deposit_time": now,
            "seq": seq,
        }

    def _refund(self, inst: CustodyInstrument, acct: str, amt: int, sel: str) -> None:
        try:
            custody.push_out(inst, acct, amt)
        except CustodyTransferError as e:
            # Funds are now held without a ledger credit; operators must reconcile.
            inc_counter("vault_reconcile_failures_total", op="deposit_refund")
            log_event(
                log,
                "vault_reconcile_required",
                level=logging.ERROR,
                op="deposit_refund",
                account=acct,
                amount=amt,
                instrument=sel,
                reason=e.reason,
                details=e.details,
            )
            return
        log_event(log, "vault_deposit_refunded", account=acct, amount=amt, instrument=sel)

    def withdraw(self, caller: Any, amount: Any, instrument: Any) -> Json:
        """Debit `caller` and push `amount` of `instrument` out of custody.

        The debit and its event are committed first, while the reentrancy guard
        is held; nothing leaves custody unless that commit succeeded. A failed
        push-out then restores the debit in a second transaction.
        """
        try:
            acct = self._caller(caller)
            amt = _as_amount(amount)
            sel, inst = self._instrument(instrument)
        except VaultError as e:
            self._rejected("withdraw", e)
            raise

        try:
            with self._guard.enter("withdraw"):
                with self._db.write_tx() as con:
                    params = self._store.load_params(con)
                    self._deny_if_paused(params, "withdraw")

                    rec = self._store.load_account(con, acct)
                    if rec.locked:
                        raise VaultStateError("invalid_state", "account_locked", {"account": acct})

                    now = self.now()
                    unlock_at = int(rec.last_deposit_time) + COOLDOWN_PERIOD_SECONDS
                    if now < unlock_at:
                        raise VaultStateError(
                            "invalid_state",
                            "cooldown_active",
                            {"account": acct, "now": now, "withdrawable_at": unlock_at},
                        )

                    have = rec.balance_of(sel)
                    if have < amt:
                        raise VaultStateError(
                            "invalid_state",
                            "insufficient_balance",
                            {"account": acct, "instrument": sel, "balance": have, "amount": amt},
                        )

                    new_balance = have - amt
                    self._store.save_account(con, rec.with_balance(sel, new_balance))
                    seq = self._emit(con, "withdraw", acct, {"account": acct, "amount": amt, "instrument": sel})

                try:
                    custody.push_out(inst, acct, amt)
                except CustodyTransferError:
                    self._restore_debit(acct, amt, sel, seq)
                    raise
        except VaultError as e:
            self._rejected("withdraw", e)
            raise

        inc_counter("vault_withdrawals_total", instrument=sel)
        inc_counter("vault_withdrawn_amount_total", amt, instrument=sel)
        log_event(log, "vault_withdraw", account=acct, amount=amt, instrument=sel, balance=new_balance, seq=seq)
        return {
            "applied": "WITHDRAW",
            "account": acct,
            "instrument": sel,
            "amount": amt,
            "balance": new_balance,
            "seq": seq,
        }

    def _restore_debit(self, acct: str, amt: int, sel: str, seq: int) -> None:
        try:
            with self._db.write_tx() as con:
                rec = self._store.load_account(con, acct)
                self._store.save_account(con, rec.with_balance(sel, rec.balance_of(sel) + amt))
                self._store.delete_event(con, seq)
        except Exception as e:
            # Ledger shows a debit for funds still in custody; operators must reconcile.
            inc_counter("vault_reconcile_failures_total", op="withdraw_restore")
            log_event(
                log,
                "vault_reconcile_required",
                level=logging.ERROR,
                op="withdraw_restore",
                account=acct,
                amount=amt,
                instrument=sel,
                seq=seq,
                error=str(e),
            )
            return
        log_event(log, "vault_withdraw_restored", account=acct, amount=amt, instrument=sel, seq=seq)

    def get_account(self, account: Any) -> AccountRecord:
        acct = _as_account(account, missing=VaultValidationError("invalid_payload", "missing_account", {}))
        return self._store.read_account(acct)

    def get_total_balance(self, account: Any) -> int:
        return self.get_account(account).total_balance

    def view(self) -> VaultView:
        """Read-only snapshot of every account plus the current params."""
        return VaultView.from_snapshot(self._store.snapshot())

    # ------------------------------------------------------------------
    # voting power

    def get_voting_power(self, account: Any) -> int:
        acct = _as_account(account, missing=VaultValidationError("invalid_payload", "missing_account", {}))
        with self._db.connection() as con:
            params = self._store.load_params(con)
            rec = self._store.load_account(con, acct)
        return compute_voting_power(rec, self.now(), int(params.voting_power_cap))

    # ------------------------------------------------------------------
    # lock state

    def lock(self, caller: Any, account: Any) -> Json:
        return self._set_lock(caller, account, True)

    def unlock(self, caller: Any, account: Any) -> Json:
        return self._set_lock(caller, account, False)

    def _set_lock(self, caller: Any, account: Any, desired: bool) -> Json:
        op = "lock" if desired else "unlock"
        try:
            c = self._caller(caller)
            target = _as_account(account, missing=VaultValidationError("invalid_payload", "missing_account", {}))
            self._guard.ensure_not_held(op)

            with self._db.write_tx() as con:
                params = self._store.load_params(con)
                self._require_voting_authority(params, c)

                rec = self._store.load_account(con, target)
                if bool(rec.locked) == desired:
                    return {"applied": op.upper(), "account": target, "locked": desired, "deduped": True}

                self._store.save_account(con, replace(rec, locked=desired))
                seq = self._emit(con, "lock", target, {"account": target, "locked": desired})
        except VaultError as e:
            self._rejected(op, e)
            raise

        inc_counter("vault_lock_changes_total", op=op)
        log_event(log, f"vault_{op}", account=target, locked=desired, caller=c, seq=seq)
        return {"applied": op.upper(), "account": target, "locked": desired, "seq": seq}

    # ------------------------------------------------------------------
    # admin / lifecycle gate

    def get_params(self) -> VaultParams:
        return self._store.read_params()

    def _admin_update(self, caller: Any, op: str, field: str, value: Any, build: Callable[[VaultParams], VaultParams]) -> Json:
        try:
            c = self._caller(caller)
            with self._db.write_tx() as con:
                params = self._store.load_params(con)
                self._require_owner(params, c)
                updated = build(params)
                self._store.save_params(con, updated)
                seq = self._emit(con, "config_updated", c, {"field": field, "value": value})
        except VaultError as e:
            self._rejected(op, e)
            raise

        inc_counter("vault_config_updates_total", field=field)
        log_event(log, "vault_config_updated", field=field, value=value, caller=c, seq=seq)
        return {"applied": op.upper(), "field": field, "value": value, "seq": seq}

    @staticmethod
    def _as_param_int(field: str, value: Any) -> int:
        if isinstance(value, bool):
            raise VaultValidationError("invalid_payload", "invalid_param", {"field": field, "value": value})
        try:
            return int(value)
        except Exception:
            raise VaultValidationError("invalid_payload", "invalid_param", {"field": field, "value": str(value)})

    def set_min_deposit_amount(self, caller: Any, value: Any) -> Json:
        v = self._as_param_int("min_deposit_amount", value)

        def build(p: VaultParams) -> VaultParams:
            if v < 0 or v >= int(p.max_deposit_amount):
                raise VaultValidationError(
                    "invalid_payload",
                    "invalid_param",
                    {"field": "min_deposit_amount", "value": v, "max_deposit_amount": int(p.max_deposit_amount)},
                )
            return replace(p, min_deposit_amount=v)

        return self._admin_update(caller, "set_min_deposit_amount", "min_deposit_amount", v, build)

    def set_max_deposit_amount(self, caller: Any, value: Any) -> Json:
        v = self._as_param_int("max_deposit_amount", value)

        def build(p: VaultParams) -> VaultParams:
            if v <= int(p.min_deposit_amount):
                raise VaultValidationError(
                    "invalid_payload",
                    "invalid_param",
                    {"field": "max_deposit_amount", "value": v, "min_deposit_amount": int(p.min_deposit_amount)},
                )
            return replace(p, max_deposit_amount=v)

        return self._admin_update(caller, "set_max_deposit_amount", "max_deposit_amount", v, build)

    def set_voting_power_cap(self, caller: Any, value: Any) -> Json:
        v = self._as_param_int("voting_power_cap", value)

        def build(p: VaultParams) -> VaultParams:
            if v <= 0:
                raise VaultValidationError("invalid_payload", "invalid_param", {"field": "voting_power_cap", "value": v})
            return replace(p, voting_power_cap=v)

        return self._admin_update(caller, "set_voting_power_cap", "voting_power_cap", v, build)

    def pause(self, caller: Any) -> Json:
        def build(p: VaultParams) -> VaultParams:
            if p.paused:
                raise VaultStateError("invalid_state", "already_paused", {})
            return replace(p, paused=True)

        res = self._admin_update(caller, "pause", "paused", True, build)
        set_gauge("vault_paused", 1)
        return res

    def unpause(self, caller: Any) -> Json:
        def build(p: VaultParams) -> VaultParams:
            if not p.paused:
                raise VaultStateError("invalid_state", "not_paused", {})
            return replace(p, paused=False)

        res = self._admin_update(caller, "unpause", "paused", False, build)
        set_gauge("vault_paused", 0)
        return res

    def set_voting_authority(self, caller: Any, authority: Any) -> Json:
        # Empty clears the authority: nobody can lock/unlock until reassigned.
        a = str(authority or "").strip() if not isinstance(authority, bool) else ""
        return self._admin_update(
            caller,
            "set_voting_authority",
            "voting_authority",
            a,
            lambda p: replace(p, voting_authority=a),
        )

    def transfer_ownership(self, caller: Any, new_owner: Any) -> Json:
        o = _as_account(new_owner, missing=VaultValidationError("invalid_payload", "invalid_param", {"field": "owner"}))
        return self._admin_update(caller, "transfer_ownership", "owner", o, lambda p: replace(p, owner=o))

    # ------------------------------------------------------------------
    # notifications

    def events(self, *, after_seq: int = 0, limit: int = 100, account: Optional[str] = None) -> List[Json]:
        return self._store.read_events(after_seq=after_seq, limit=limit, account=account)


__all__ = ["Vault"]
