# src/govvault/runtime/custody.py
"""Custody adapter: the pull-in / push-out capability of a deposit instrument.

The vault never holds instrument balances itself; it only asks an instrument to
move value between a participant and the vault's custody account. Instruments
report failure by returning False or by raising. Either way the vault aborts the
enclosing operation with CustodyTransferError.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Protocol

from govvault.ledger.constants import DEFAULT_CUSTODY_ACCOUNT
from govvault.runtime.errors import CustodyTransferError

log = logging.getLogger("govvault.custody")


class CustodyInstrument(Protocol):
    symbol: str

    def pull_in(self, from_account: str, amount: int) -> bool:
        ...

    def push_out(self, to_account: str, amount: int) -> bool:
        ...


class MemoryInstrument:
    """In-process fungible instrument used for dev mode and tests.

    Holds plain integer balances. pull_in moves funds from a participant into
    `custody_account`; push_out moves them back out.
    """

    def __init__(self, *, symbol: str, custody_account: str = DEFAULT_CUSTODY_ACCOUNT) -> None:
        self.symbol = str(symbol)
        self.custody_account = str(custody_account)
        self._balances: Dict[str, int] = {}
        self._lock = threading.RLock()

    def balance_of(self, account: str) -> int:
        with self._lock:
            return int(self._balances.get(account, 0))

    def mint(self, account: str, amount: int) -> None:
        amt = int(amount)
        if amt <= 0:
            raise ValueError("mint amount must be positive")
        with self._lock:
            self._balances[account] = int(self._balances.get(account, 0)) + amt

    def _move(self, src: str, dst: str, amount: int) -> bool:
        amt = int(amount)
        if amt <= 0:
            return False
        with self._lock:
            have = int(self._balances.get(src, 0))
            if have < amt:
                return False
            self._balances[src] = have - amt
            self._balances[dst] = int(self._balances.get(dst, 0)) + amt
        return True

    def pull_in(self, from_account: str, amount: int) -> bool:
        return self._move(from_account, self.custody_account, amount)

    def push_out(self, to_account: str, amount: int) -> bool:
        return self._move(self.custody_account, to_account, amount)


def _call_transfer(instrument: CustodyInstrument, op: str, account: str, amount: int) -> None:
    fn = getattr(instrument, op)
    symbol = str(getattr(instrument, "symbol", "") or "")
    try:
        ok = fn(account, int(amount))
    except CustodyTransferError:
        raise
    except Exception as e:
        # Anything the instrument raises (including a rejected nested vault call)
        # surfaces as a failed transfer, with the original error attached.
        raise CustodyTransferError(
            "custody_failed",
            f"{op}_failed",
            {"instrument": symbol, "account": account, "amount": int(amount), "cause": "instrument_raised", "error": str(e)},
        ) from e

    if ok is not True:
        log.warning("custody %s returned failure instrument=%s account=%s amount=%s", op, symbol, account, int(amount))
        raise CustodyTransferError(
            "custody_failed",
            f"{op}_failed",
            {"instrument": symbol, "account": account, "amount": int(amount), "cause": "instrument_returned_failure"},
        )


def pull_in(instrument: CustodyInstrument, from_account: str, amount: int) -> None:
    """Pull `amount` from `from_account` into custody or raise CustodyTransferError."""
    _call_transfer(instrument, "pull_in", from_account, amount)


def push_out(instrument: CustodyInstrument, to_account: str, amount: int) -> None:
    """Push `amount` from custody to `to_account` or raise CustodyTransferError."""
    _call_transfer(instrument, "push_out", to_account, amount)


__all__ = ["CustodyInstrument", "MemoryInstrument", "pull_in", "push_out"]
