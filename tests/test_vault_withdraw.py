from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path

import pytest

from govvault.ledger.constants import INSTRUMENT_A, INSTRUMENT_B
from govvault.runtime import metrics
from govvault.runtime.custody import MemoryInstrument
from govvault.runtime.errors import CustodyTransferError, VaultStateError, VaultValidationError
from govvault.testing.vault_harness import OWNER, T0, VOTING_AUTHORITY, mk_vault


class _RefusingPushOut(MemoryInstrument):
    """Accepts deposits but refuses to release anything."""

    def push_out(self, to_account: str, amount: int) -> bool:
        return False


def _funded(tmp_path: Path, amount: int = 1_000):
    h = mk_vault(tmp_path)
    h.fund("alice", 10_000, INSTRUMENT_A)
    h.fund("alice", 10_000, INSTRUMENT_B)
    h.vault.deposit("alice", amount, INSTRUMENT_A)
    return h


def test_withdraw_within_cooldown_is_rejected(tmp_path: Path) -> None:
    h = _funded(tmp_path)
    h.clock.advance(seconds=86_399)

    with pytest.raises(VaultStateError) as e:
        h.vault.withdraw("alice", 100, INSTRUMENT_A)
    assert e.value.reason == "cooldown_active"
    assert e.value.details["withdrawable_at"] == T0 + 86_400

    assert h.vault.get_account("alice").balance_a == 1_000


def test_withdraw_exactly_at_cooldown_end_succeeds(tmp_path: Path) -> None:
    h = _funded(tmp_path)
    h.clock.advance(days=1)

    res = h.vault.withdraw("alice", 400, INSTRUMENT_A)
    assert res["applied"] == "WITHDRAW"
    assert res["balance"] == 600

    inst = h.instruments[INSTRUMENT_A]
    assert inst.balance_of("alice") == 9_400
    assert inst.balance_of(inst.custody_account) == 600


def test_cooldown_restarts_on_any_deposit(tmp_path: Path) -> None:
    h = _funded(tmp_path)
    h.clock.advance(days=5)
    # Topping up instrument B restarts the cooldown for A as well.
    h.vault.deposit("alice", 100, INSTRUMENT_B)

    with pytest.raises(VaultStateError) as e:
        h.vault.withdraw("alice", 100, INSTRUMENT_A)
    assert e.value.reason == "cooldown_active"


def test_locked_account_cannot_withdraw_until_unlocked(tmp_path: Path) -> None:
    h = _funded(tmp_path)
    h.clock.advance(days=2)

    h.vault.lock(VOTING_AUTHORITY, "alice")
    with pytest.raises(VaultStateError) as e:
        h.vault.withdraw("alice", 100, INSTRUMENT_A)
    assert e.value.reason == "account_locked"
    assert h.vault.get_account("alice").balance_a == 1_000

    h.vault.unlock(VOTING_AUTHORITY, "alice")
    h.vault.withdraw("alice", 100, INSTRUMENT_A)
    assert h.vault.get_account("alice").balance_a == 900


def test_lock_is_reported_before_cooldown(tmp_path: Path) -> None:
    h = _funded(tmp_path)
    h.vault.lock(VOTING_AUTHORITY, "alice")

    with pytest.raises(VaultStateError) as e:
        h.vault.withdraw("alice", 100, INSTRUMENT_A)
    assert e.value.reason == "account_locked"


def test_overdraw_is_rejected(tmp_path: Path) -> None:
    h = _funded(tmp_path)
    h.clock.advance(days=1)

    with pytest.raises(VaultStateError) as e:
        h.vault.withdraw("alice", 1_001, INSTRUMENT_A)
    assert e.value.reason == "insufficient_balance"
    assert h.vault.get_account("alice").balance_a == 1_000


def test_withdraw_only_draws_from_named_instrument(tmp_path: Path) -> None:
    h = _funded(tmp_path)
    h.clock.advance(days=1)

    # Balance in A does not back a B withdrawal.
    with pytest.raises(VaultStateError) as e:
        h.vault.withdraw("alice", 100, INSTRUMENT_B)
    assert e.value.reason == "insufficient_balance"


def test_unknown_account_has_nothing_to_withdraw(tmp_path: Path) -> None:
    h = mk_vault(tmp_path)
    with pytest.raises(VaultStateError) as e:
        h.vault.withdraw("bob", 100, INSTRUMENT_A)
    assert e.value.reason == "insufficient_balance"


def test_invalid_amount_is_rejected(tmp_path: Path) -> None:
    h = _funded(tmp_path)
    h.clock.advance(days=1)
    with pytest.raises(VaultValidationError) as e:
        h.vault.withdraw("alice", 0, INSTRUMENT_A)
    assert e.value.reason == "invalid_amount"


def test_withdraw_rejected_while_paused(tmp_path: Path) -> None:
    h = _funded(tmp_path)
    h.clock.advance(days=1)
    h.vault.pause(OWNER)

    with pytest.raises(VaultStateError) as e:
        h.vault.withdraw("alice", 100, INSTRUMENT_A)
    assert e.value.reason == "paused"

    h.vault.unpause(OWNER)
    h.vault.withdraw("alice", 100, INSTRUMENT_A)


def test_failed_push_out_rolls_back_debit(tmp_path: Path) -> None:
    insts = {
        INSTRUMENT_A: _RefusingPushOut(symbol=INSTRUMENT_A),
        INSTRUMENT_B: MemoryInstrument(symbol=INSTRUMENT_B),
    }
    h = mk_vault(tmp_path, instruments=insts)
    h.fund("alice", 1_000)
    h.vault.deposit("alice", 1_000, INSTRUMENT_A)
    h.clock.advance(days=1)

    with pytest.raises(CustodyTransferError) as e:
        h.vault.withdraw("alice", 500, INSTRUMENT_A)
    assert e.value.reason == "push_out_failed"
    assert e.value.details["cause"] == "instrument_returned_failure"

    assert h.vault.get_account("alice").balance_a == 1_000
    # Only the deposit notification survived.
    assert [ev["kind"] for ev in h.vault.events()] == ["deposit"]


def test_zero_balance_account_can_be_reactivated(tmp_path: Path) -> None:
    h = _funded(tmp_path)
    h.clock.advance(days=1)
    h.vault.withdraw("alice", 1_000, INSTRUMENT_A)

    rec = h.vault.get_account("alice")
    assert rec.total_balance == 0
    assert h.vault.get_voting_power("alice") == 0

    h.vault.deposit("alice", 300, INSTRUMENT_A)
    assert h.vault.get_account("alice").balance_a == 300


def test_withdraw_emits_notification(tmp_path: Path) -> None:
    h = _funded(tmp_path)
    h.clock.advance(days=1)
    res = h.vault.withdraw("alice", 250, INSTRUMENT_A)

    ev = h.vault.events(after_seq=res["seq"] - 1)[0]
    assert ev["kind"] == "withdraw"
    assert ev["account"] == "alice"
    assert ev["payload"] == {"account": "alice", "amount": 250, "instrument": INSTRUMENT_A}


class _FailingCommit:
    """Connection wrapper whose COMMIT fails like a full or broken disk."""

    def __init__(self, con: sqlite3.Connection) -> None:
        self._con = con

    def execute(self, sql: str, *args):
        if sql.strip().upper().startswith("COMMIT"):
            raise sqlite3.OperationalError("disk I/O error")
        return self._con.execute(sql, *args)

    def __getattr__(self, name: str):
        return getattr(self._con, name)


def test_commit_failure_releases_nothing_from_custody(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    h = _funded(tmp_path)
    h.clock.advance(days=1)

    connect = h.vault._db._connect
    monkeypatch.setattr(h.vault._db, "_connect", lambda: _FailingCommit(connect()))

    with pytest.raises(sqlite3.OperationalError):
        h.vault.withdraw("alice", 400, INSTRUMENT_A)

    monkeypatch.undo()
    inst = h.instruments[INSTRUMENT_A]
    assert h.vault.get_account("alice").balance_a == 1_000
    assert inst.balance_of("alice") == 9_000
    assert inst.balance_of(inst.custody_account) == 1_000
    assert [ev["kind"] for ev in h.vault.events()] == ["deposit"]


def test_failed_restore_is_logged_for_reconciliation(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    insts = {
        INSTRUMENT_A: _RefusingPushOut(symbol=INSTRUMENT_A),
        INSTRUMENT_B: MemoryInstrument(symbol=INSTRUMENT_B),
    }
    h = mk_vault(tmp_path, instruments=insts)
    h.fund("alice", 1_000)
    h.vault.deposit("alice", 1_000, INSTRUMENT_A)
    h.clock.advance(days=1)

    def _boom(con, seq: int) -> None:
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(h.vault._store, "delete_event", _boom)

    with caplog.at_level(logging.INFO, logger="govvault.vault"):
        with pytest.raises(CustodyTransferError):
            h.vault.withdraw("alice", 500, INSTRUMENT_A)

    # The ledger keeps the debit; custody still holds the funds.
    assert h.vault.get_account("alice").balance_a == 500
    assert insts[INSTRUMENT_A].balance_of(insts[INSTRUMENT_A].custody_account) == 1_000

    recs = [r for r in caplog.records if r.name == "govvault.vault" and r.levelno == logging.ERROR]
    (ev,) = [json.loads(r.getMessage()) for r in recs]
    assert ev["event"] == "vault_reconcile_required"
    assert ev["op"] == "withdraw_restore"
    assert ev["amount"] == 500
    assert metrics.value("vault_reconcile_failures_total", op="withdraw_restore") == 1
