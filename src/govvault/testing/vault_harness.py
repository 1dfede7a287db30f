from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from govvault.ledger.constants import INSTRUMENT_A, INSTRUMENT_B, SECONDS_PER_DAY
from govvault.ledger.state import VaultParams
from govvault.runtime.custody import CustodyInstrument, MemoryInstrument
from govvault.runtime.sqlite_db import SqliteDB, SqliteVaultStore
from govvault.runtime.vault import Vault

OWNER = "owner"
VOTING_AUTHORITY = "voting"

# Base timestamp for deterministic clocks (2023-11-14T22:13:20Z).
T0 = 1_700_000_000


class FakeClock:
    """Settable unix-seconds clock. TEST ONLY."""

    def __init__(self, start: int = T0) -> None:
        self.now = int(start)

    def __call__(self) -> int:
        return int(self.now)

    def advance(self, *, days: int = 0, seconds: int = 0) -> int:
        self.now += int(days) * SECONDS_PER_DAY + int(seconds)
        return self.now


@dataclass
class VaultHarness:
    vault: Vault
    clock: FakeClock
    instruments: Dict[str, CustodyInstrument]
    db_path: str

    def fund(self, account: str, amount: int, instrument: str = INSTRUMENT_A) -> None:
        inst = self.instruments[instrument]
        if not isinstance(inst, MemoryInstrument):
            raise TypeError("fund() needs a MemoryInstrument")
        inst.mint(account, amount)


def default_test_params(**overrides) -> VaultParams:
    base = dict(
        min_deposit_amount=100,
        max_deposit_amount=10_000,
        voting_power_cap=100_000,
        paused=False,
        owner=OWNER,
        voting_authority=VOTING_AUTHORITY,
    )
    base.update(overrides)
    return VaultParams(**base)


def mk_vault(
    tmp_path: Path,
    *,
    params: Optional[VaultParams] = None,
    instruments: Optional[Dict[str, CustodyInstrument]] = None,
    clock: Optional[FakeClock] = None,
    db_name: str = "govvault.db",
) -> VaultHarness:
    """Build a vault on a fresh SQLite file with in-memory instruments. TEST ONLY."""
    clk = clock or FakeClock()
    insts: Dict[str, CustodyInstrument] = instruments or {
        INSTRUMENT_A: MemoryInstrument(symbol=INSTRUMENT_A),
        INSTRUMENT_B: MemoryInstrument(symbol=INSTRUMENT_B),
    }
    db_path = str(tmp_path / db_name)
    store = SqliteVaultStore(db=SqliteDB(path=db_path))
    v = Vault.bootstrap(store=store, instruments=insts, params=params or default_test_params(), clock=clk)
    return VaultHarness(vault=v, clock=clk, instruments=insts, db_path=db_path)
