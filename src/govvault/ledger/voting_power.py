# src/govvault/ledger/voting_power.py
"""Time-weighted voting power.

voting_power = min(cap, total * (W + d) // W)

  total = balance_a + balance_b
  W     = weight period in days (30)
  d     = whole days since the last deposit, clamped to [0, W]

Power starts at exactly the deposited total and grows linearly to 2x total over
the weight period, then plateaus. Any deposit resets the clock for the whole
position, not only the topped-up amount.
"""

from __future__ import annotations

from govvault.ledger.constants import SECONDS_PER_DAY, WEIGHT_PERIOD_DAYS
from govvault.ledger.state import AccountRecord


def elapsed_weight_days(last_deposit_time: int, now_s: int) -> int:
    """Whole days since `last_deposit_time`, clamped to [0, WEIGHT_PERIOD_DAYS]."""
    elapsed = (int(now_s) - int(last_deposit_time)) // SECONDS_PER_DAY
    if elapsed < 0:
        return 0
    if elapsed > WEIGHT_PERIOD_DAYS:
        return WEIGHT_PERIOD_DAYS
    return int(elapsed)


def compute_voting_power(record: AccountRecord, now_s: int, cap: int) -> int:
    total = record.total_balance
    if total <= 0:
        return 0

    weight = elapsed_weight_days(record.last_deposit_time, now_s)
    raw = (total * (WEIGHT_PERIOD_DAYS + weight)) // WEIGHT_PERIOD_DAYS

    cap_i = max(0, int(cap))
    return min(int(raw), cap_i)


__all__ = ["compute_voting_power", "elapsed_weight_days"]
