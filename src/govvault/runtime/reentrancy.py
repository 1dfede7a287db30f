from __future__ import annotations

import os
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from govvault.runtime.errors import VaultStateError


def _wait_s() -> float:
    try:
        raw = str(os.environ.get("GOVVAULT_GUARD_WAIT_MS", "")).strip()
        return max(0.0, int(raw) / 1000.0) if raw else 30.0
    except Exception:
        return 30.0


class ReentrancyGuard:
    """
    Serializes operations that call out to custody, and rejects re-entry.

    The guard is owned by the thread that entered it. A second entry from that
    same thread (a custody callback calling back into the vault) is rejected
    immediately with reentrant_call. Other threads wait their turn, bounded by
    GOVVAULT_GUARD_WAIT_MS, after which they fail with vault_busy.
    """

    def __init__(self, *, wait_s: Optional[float] = None) -> None:
        self._serial = threading.Lock()
        self._mu = threading.Lock()
        self._owner: Optional[int] = None
        self._op = ""
        self._wait_s = _wait_s() if wait_s is None else float(wait_s)

    @property
    def held(self) -> bool:
        with self._mu:
            return self._owner is not None

    def held_by_current_thread(self) -> bool:
        with self._mu:
            return self._owner == threading.get_ident()

    def ensure_not_held(self, op: str) -> None:
        """Reject `op` if it runs nested inside a guarded operation on this thread."""
        with self._mu:
            if self._owner == threading.get_ident():
                raise VaultStateError("invalid_state", "reentrant_call", {"op": op, "in_flight": self._op})

    @contextmanager
    def enter(self, op: str) -> Iterator[None]:
        self.ensure_not_held(op)

        if not self._serial.acquire(timeout=self._wait_s):
            with self._mu:
                in_flight = self._op
            raise VaultStateError("invalid_state", "vault_busy", {"op": op, "in_flight": in_flight})

        with self._mu:
            self._owner = threading.get_ident()
            self._op = str(op)
        try:
            yield
        finally:
            with self._mu:
                self._owner = None
                self._op = ""
            self._serial.release()
