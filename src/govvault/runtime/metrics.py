from __future__ import annotations

import os
import threading
from typing import Dict, List, Tuple


# name -> (type, help). Only declared families are exported.
_FAMILIES: Dict[str, Tuple[str, str]] = {
    "vault_deposits_total": ("counter", "Deposits applied, by instrument."),
    "vault_deposited_amount_total": ("counter", "Amount credited by deposits, by instrument."),
    "vault_withdrawals_total": ("counter", "Withdrawals applied, by instrument."),
    "vault_withdrawn_amount_total": ("counter", "Amount pushed out by withdrawals, by instrument."),
    "vault_rejections_total": ("counter", "Rejected operations, by op and reason."),
    "vault_lock_changes_total": ("counter", "Lock flag changes, by op."),
    "vault_config_updates_total": ("counter", "Admin parameter updates, by field."),
    "vault_reconcile_failures_total": ("counter", "Compensating transfers or writes that failed, by op."),
    "vault_paused": ("gauge", "1 while deposits and withdrawals are paused."),
}

Labels = Tuple[Tuple[str, str], ...]

_lock = threading.Lock()
_values: Dict[Tuple[str, Labels], int] = {}


def metrics_enabled() -> bool:
    v = (os.environ.get("GOVVAULT_METRICS_ENABLED") or "").strip().lower()
    return v in {"1", "true", "yes", "y", "on"}


def _key(name: str, labels: Dict[str, object]) -> Tuple[str, Labels]:
    if name not in _FAMILIES:
        raise KeyError(f"undeclared metric: {name}")
    return name, tuple(sorted((str(k), str(v)) for k, v in labels.items()))


def inc_counter(name: str, value: int = 1, **labels: object) -> None:
    k = _key(name, labels)
    with _lock:
        _values[k] = int(_values.get(k, 0)) + int(value)


def set_gauge(name: str, value: int, **labels: object) -> None:
    k = _key(name, labels)
    with _lock:
        _values[k] = int(value)


def value(name: str, **labels: object) -> int:
    k = _key(name, labels)
    with _lock:
        return int(_values.get(k, 0))


def reset() -> None:
    with _lock:
        _values.clear()


def _escape(v: str) -> str:
    return v.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def format_prometheus(prefix: str = "govvault_") -> str:
    """Prometheus exposition text for every family that has samples."""
    with _lock:
        items = sorted(_values.items())

    lines: List[str] = []
    seen = set()
    for (name, labels), v in items:
        if name not in seen:
            seen.add(name)
            kind, help_text = _FAMILIES[name]
            lines.append(f"# HELP {prefix}{name} {help_text}")
            lines.append(f"# TYPE {prefix}{name} {kind}")
        if labels:
            rendered = ",".join(f'{k}="{_escape(val)}"' for k, val in labels)
            lines.append(f"{prefix}{name}{{{rendered}}} {int(v)}")
        else:
            lines.append(f"{prefix}{name} {int(v)}")

    return "\n".join(lines) + "\n"
