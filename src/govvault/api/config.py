import os
from dataclasses import dataclass


@dataclass(frozen=True)
class ApiConfig:
    mode: str  # "dev" | "testnet" | "prod"
    caller_header: str


def load_api_config() -> ApiConfig:
    """
    Caller identity is read from a request header set by the authenticating
    gateway in front of the vault (default: X-Vault-Account).
    """
    mode = os.getenv("GOVVAULT_MODE", "prod").strip().lower()
    header = (os.getenv("GOVVAULT_API_CALLER_HEADER") or "x-vault-account").strip().lower()
    return ApiConfig(mode=mode, caller_header=header)
