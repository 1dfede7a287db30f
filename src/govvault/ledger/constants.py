# src/govvault/ledger/constants.py
from __future__ import annotations

"""Vault timing and instrument constants.

Anchors:
- Withdrawal cooldown: 1 day after the most recent deposit
- Time-weight horizon: 30 days (bonus grows linearly, then plateaus at 2x)
- Two interchangeable stable-value deposit instruments, tracked separately
"""

SECONDS_PER_DAY: int = 24 * 60 * 60

COOLDOWN_PERIOD_SECONDS: int = SECONDS_PER_DAY

WEIGHT_PERIOD_DAYS: int = 30
WEIGHT_PERIOD_SECONDS: int = WEIGHT_PERIOD_DAYS * SECONDS_PER_DAY

# Instrument selectors accepted by deposit/withdraw.
INSTRUMENT_A: str = "A"
INSTRUMENT_B: str = "B"
INSTRUMENTS = (INSTRUMENT_A, INSTRUMENT_B)

# Default admin bounds for a fresh database.
DEFAULT_MIN_DEPOSIT_AMOUNT: int = 100
DEFAULT_MAX_DEPOSIT_AMOUNT: int = 10_000
DEFAULT_VOTING_POWER_CAP: int = 100_000

# Custody account that holds pulled-in funds.
DEFAULT_CUSTODY_ACCOUNT: str = "VAULT"
