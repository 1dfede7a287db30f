# src/govvault/runtime/vault_config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from govvault.ledger.constants import (
    DEFAULT_CUSTODY_ACCOUNT,
    DEFAULT_MAX_DEPOSIT_AMOUNT,
    DEFAULT_MIN_DEPOSIT_AMOUNT,
    DEFAULT_VOTING_POWER_CAP,
)

Json = Dict[str, Any]


def _as_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


@dataclass(frozen=True)
class VaultConfig:
    mode: str  # "dev" | "testnet" | "prod"

    db_path: str

    api_host: str
    api_port: int
    log_level: str

    # Initial authority ids; written to the params record only on first boot.
    owner: str
    voting_authority: str

    # Initial admin bounds; later changes go through the admin gate.
    min_deposit_amount: int
    max_deposit_amount: int
    voting_power_cap: int

    custody_account: str


_ALLOWED_MODES = {"dev", "testnet", "prod"}


def validate_vault_config(cfg: VaultConfig) -> None:
    """Fail-fast validation for operator config."""

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {_ALLOWED_MODES}; got: {cfg.mode!r}")

    if not isinstance(cfg.db_path, str) or not cfg.db_path.strip():
        raise ValueError("db_path must be a non-empty string")

    if int(cfg.api_port) <= 0 or int(cfg.api_port) > 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")

    if not isinstance(cfg.owner, str) or not cfg.owner.strip():
        raise ValueError("owner must be a non-empty string")

    if not isinstance(cfg.custody_account, str) or not cfg.custody_account.strip():
        raise ValueError("custody_account must be a non-empty string")

    if int(cfg.min_deposit_amount) < 0:
        raise ValueError(f"min_deposit_amount must be >= 0; got: {cfg.min_deposit_amount}")

    if int(cfg.min_deposit_amount) >= int(cfg.max_deposit_amount):
        raise ValueError(
            "min_deposit_amount must be < max_deposit_amount; "
            f"got: {cfg.min_deposit_amount} >= {cfg.max_deposit_amount}"
        )

    if int(cfg.voting_power_cap) <= 0:
        raise ValueError(f"voting_power_cap must be > 0; got: {cfg.voting_power_cap}")


def default_vault_config() -> VaultConfig:
    return VaultConfig(
        # Production-safe default; dev conveniences must be opted into.
        mode="prod",
        db_path="./data/govvault.db",
        api_host="127.0.0.1",
        api_port=8080,
        log_level="INFO",
        owner="owner",
        voting_authority="",
        min_deposit_amount=DEFAULT_MIN_DEPOSIT_AMOUNT,
        max_deposit_amount=DEFAULT_MAX_DEPOSIT_AMOUNT,
        voting_power_cap=DEFAULT_VOTING_POWER_CAP,
        custody_account=DEFAULT_CUSTODY_ACCOUNT,
    )


def _from_mapping(raw: Json, d: VaultConfig) -> VaultConfig:
    return VaultConfig(
        mode=_as_str(raw.get("mode"), d.mode).strip().lower(),
        db_path=_as_str(raw.get("db_path"), d.db_path),
        api_host=_as_str(raw.get("api_host"), d.api_host),
        api_port=_as_int(raw.get("api_port"), d.api_port),
        log_level=_as_str(raw.get("log_level"), d.log_level),
        owner=_as_str(raw.get("owner"), d.owner).strip(),
        voting_authority=str(raw.get("voting_authority") or d.voting_authority).strip(),
        min_deposit_amount=_as_int(raw.get("min_deposit_amount"), d.min_deposit_amount),
        max_deposit_amount=_as_int(raw.get("max_deposit_amount"), d.max_deposit_amount),
        voting_power_cap=_as_int(raw.get("voting_power_cap"), d.voting_power_cap),
        custody_account=_as_str(raw.get("custody_account"), d.custody_account).strip(),
    )


def read_vault_config_file(path: str) -> VaultConfig:
    p = Path(path)
    raw = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("vault config must be a JSON object")

    cfg = _from_mapping(raw, default_vault_config())
    validate_vault_config(cfg)
    return cfg


_ENV_KEYS = {
    "mode": "GOVVAULT_MODE",
    "db_path": "GOVVAULT_DB_PATH",
    "api_host": "GOVVAULT_API_HOST",
    "api_port": "GOVVAULT_API_PORT",
    "log_level": "GOVVAULT_LOG_LEVEL",
    "owner": "GOVVAULT_OWNER",
    "voting_authority": "GOVVAULT_VOTING_AUTHORITY",
    "min_deposit_amount": "GOVVAULT_MIN_DEPOSIT_AMOUNT",
    "max_deposit_amount": "GOVVAULT_MAX_DEPOSIT_AMOUNT",
    "voting_power_cap": "GOVVAULT_VOTING_POWER_CAP",
    "custody_account": "GOVVAULT_CUSTODY_ACCOUNT",
}


def load_vault_config(*, config_path: Optional[str] = None) -> VaultConfig:
    """Load config from a JSON file (if given) and overlay GOVVAULT_* env vars."""
    p = config_path or os.environ.get("GOVVAULT_CONFIG_PATH")
    base = read_vault_config_file(p) if p else default_vault_config()

    overrides: Json = {}
    for field_name, env_name in _ENV_KEYS.items():
        v = os.environ.get(env_name)
        if v is not None and v.strip():
            overrides[field_name] = v.strip()

    cfg = _from_mapping(overrides, base) if overrides else base
    validate_vault_config(cfg)
    return cfg
