from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from govvault.runtime.errors import VaultError


_STATUS_BY_KIND = {
    "validation": 400,
    "authorization": 403,
    "state": 409,
    "external": 502,
}


@dataclass
class ApiError(Exception):
    status_code: int
    code: str
    message: str
    details: Dict[str, Any]

    def to_json(self) -> Dict[str, Any]:
        return {"ok": False, "error": {"code": self.code, "message": self.message, "details": self.details}}

    @staticmethod
    def bad_request(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(400, code, message, details or {})

    @staticmethod
    def forbidden(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(403, code, message, details or {})

    @staticmethod
    def not_found(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(404, code, message, details or {})

    @staticmethod
    def internal(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(500, code, message, details or {})

    @staticmethod
    def from_vault_error(e: VaultError) -> "ApiError":
        status = _STATUS_BY_KIND.get(getattr(e, "kind", ""), 400)
        details = e.details if isinstance(e.details, dict) else ({} if e.details is None else {"detail": e.details})
        # The specific reason is the stable machine-readable code for clients.
        return ApiError(status, e.reason, e.code, dict(details))
