from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class VaultError(Exception):
    """Canonical error type for vault operation failures.

    Every failure is all-or-nothing: by the time a VaultError escapes a Vault
    method, the ledger is exactly as it was before the call.
    """

    code: str
    reason: str
    details: Any | None = None

    kind = "error"

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


@dataclass
class VaultValidationError(VaultError):
    """Bad input: non-positive amount, out-of-bounds amount, unknown instrument."""

    kind = "validation"


@dataclass
class VaultStateError(VaultError):
    """Operation not allowed in the current ledger state (paused, locked, cooldown...)."""

    kind = "state"


@dataclass
class VaultAuthError(VaultError):
    """Caller is not allowed to perform the operation."""

    kind = "authorization"


@dataclass
class CustodyTransferError(VaultError):
    """The external custody capability reported failure."""

    kind = "external"
