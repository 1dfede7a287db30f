# src/govvault/runtime/vault_boot.py

from __future__ import annotations

from typing import Callable, Mapping, Optional

from govvault.ledger.constants import INSTRUMENTS
from govvault.ledger.state import VaultParams
from govvault.runtime.custody import CustodyInstrument, MemoryInstrument
from govvault.runtime.sqlite_db import SqliteDB, SqliteVaultStore
from govvault.runtime.vault import Vault
from govvault.runtime.vault_config import VaultConfig, load_vault_config


def initial_params(cfg: VaultConfig) -> VaultParams:
    return VaultParams(
        min_deposit_amount=int(cfg.min_deposit_amount),
        max_deposit_amount=int(cfg.max_deposit_amount),
        voting_power_cap=int(cfg.voting_power_cap),
        paused=False,
        owner=cfg.owner,
        voting_authority=cfg.voting_authority,
    )


def memory_instruments(custody_account: str) -> dict[str, CustodyInstrument]:
    return {sel: MemoryInstrument(symbol=sel, custody_account=custody_account) for sel in INSTRUMENTS}


def build_vault(
    cfg: Optional[VaultConfig] = None,
    *,
    instruments: Optional[Mapping[str, CustodyInstrument]] = None,
    clock: Optional[Callable[[], int]] = None,
) -> Vault:
    """
    Build a Vault from an explicit config or, if omitted, from GOVVAULT_* env.

    In-memory instruments are only wired automatically outside prod; a prod
    deployment must hand in real custody instruments.
    """
    c = cfg or load_vault_config()

    if instruments is None:
        if c.mode == "prod":
            raise RuntimeError(
                "mode=prod requires explicit custody instruments; "
                "in-memory instruments are only available in dev/testnet."
            )
        instruments = memory_instruments(c.custody_account)

    db = SqliteDB(path=c.db_path)
    store = SqliteVaultStore(db=db)
    return Vault.bootstrap(store=store, instruments=instruments, params=initial_params(c), clock=clock)
