from __future__ import annotations

import json
import os
from dataclasses import replace
from pathlib import Path

import pytest

from govvault import env as govvault_env
from govvault.ledger.constants import INSTRUMENT_A
from govvault.runtime.custody import MemoryInstrument
from govvault.runtime.vault_boot import build_vault, initial_params
from govvault.runtime.vault_config import (
    default_vault_config,
    load_vault_config,
    read_vault_config_file,
    validate_vault_config,
)


def _write_cfg(tmp_path: Path, **fields) -> str:
    p = tmp_path / "vault.json"
    p.write_text(json.dumps(fields), encoding="utf-8")
    return str(p)


def test_defaults_are_production_posture(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("GOVVAULT_MODE", raising=False)
    cfg = load_vault_config()
    assert cfg.mode == "prod"
    assert (cfg.min_deposit_amount, cfg.max_deposit_amount, cfg.voting_power_cap) == (100, 10_000, 100_000)
    assert cfg.voting_authority == ""


def test_file_values_are_loaded(tmp_path: Path) -> None:
    path = _write_cfg(
        tmp_path,
        mode="testnet",
        db_path=str(tmp_path / "x.db"),
        owner="treasury",
        voting_authority="council",
        min_deposit_amount=10,
        max_deposit_amount=500,
    )
    cfg = read_vault_config_file(path)
    assert cfg.mode == "testnet"
    assert cfg.owner == "treasury"
    assert cfg.voting_authority == "council"
    assert (cfg.min_deposit_amount, cfg.max_deposit_amount) == (10, 500)
    # Unset fields fall back to defaults.
    assert cfg.api_port == 8080


def test_env_overrides_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = _write_cfg(tmp_path, owner="treasury", voting_power_cap=5_000)
    monkeypatch.setenv("GOVVAULT_CONFIG_PATH", path)
    monkeypatch.setenv("GOVVAULT_VOTING_POWER_CAP", "7000")
    monkeypatch.setenv("GOVVAULT_API_PORT", "9001")

    cfg = load_vault_config()
    assert cfg.mode == "dev"
    assert cfg.owner == "treasury"
    assert cfg.voting_power_cap == 7_000
    assert cfg.api_port == 9001


@pytest.mark.parametrize(
    "env_name,value",
    [
        ("GOVVAULT_MODE", "staging"),
        ("GOVVAULT_API_PORT", "70000"),
        ("GOVVAULT_MIN_DEPOSIT_AMOUNT", "10000"),
        ("GOVVAULT_VOTING_POWER_CAP", "-1"),
    ],
)
def test_invalid_values_fail_fast(monkeypatch: pytest.MonkeyPatch, env_name: str, value: str) -> None:
    monkeypatch.setenv(env_name, value)
    with pytest.raises(ValueError):
        load_vault_config()


def test_empty_owner_is_rejected() -> None:
    with pytest.raises(ValueError):
        validate_vault_config(replace(default_vault_config(), owner=""))


def test_config_file_must_be_an_object(tmp_path: Path) -> None:
    p = tmp_path / "vault.json"
    p.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ValueError):
        read_vault_config_file(str(p))


def test_initial_params_mirror_config() -> None:
    p = initial_params(default_vault_config())
    assert p.owner == "owner"
    assert p.paused is False
    assert p.max_deposit_amount == 10_000


def test_build_vault_in_prod_requires_instruments(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GOVVAULT_MODE", "prod")
    monkeypatch.setenv("GOVVAULT_DB_PATH", str(tmp_path / "prod.db"))
    with pytest.raises(RuntimeError):
        build_vault()


def test_build_vault_in_prod_with_instruments(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GOVVAULT_MODE", "prod")
    monkeypatch.setenv("GOVVAULT_DB_PATH", str(tmp_path / "prod.db"))
    insts = {sel: MemoryInstrument(symbol=sel) for sel in ("A", "B")}

    v = build_vault(instruments=insts)
    assert v.get_params().owner == "owner"


def test_build_vault_in_dev_uses_memory_instruments(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GOVVAULT_DB_PATH", str(tmp_path / "dev.db"))
    monkeypatch.setenv("GOVVAULT_OWNER", "treasury")
    monkeypatch.setenv("GOVVAULT_MIN_DEPOSIT_AMOUNT", "5")

    v = build_vault()
    p = v.get_params()
    assert p.owner == "treasury"
    assert p.min_deposit_amount == 5
    assert v.get_total_balance("alice") == 0
    assert v.get_account("alice").balance_of(INSTRUMENT_A) == 0


def test_dotenv_is_loaded_once_without_overriding(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    dotenv = tmp_path / ".env"
    dotenv.write_text("GOVVAULT_TEST_DOTENV_MARKER=from-file\nGOVVAULT_MODE=prod\n", encoding="utf-8")

    # Register the marker so monkeypatch removes it again afterwards.
    monkeypatch.setenv("GOVVAULT_TEST_DOTENV_MARKER", "")
    monkeypatch.delenv("GOVVAULT_TEST_DOTENV_MARKER")
    monkeypatch.setattr(govvault_env, "_LOADED", False)

    assert govvault_env.load_dotenv_if_present(str(dotenv)) is True
    assert os.environ["GOVVAULT_TEST_DOTENV_MARKER"] == "from-file"
    # Already-set variables win over the file.
    assert os.environ["GOVVAULT_MODE"] == "dev"

    assert govvault_env.load_dotenv_if_present(str(dotenv)) is False


def test_missing_dotenv_is_not_an_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(govvault_env, "_LOADED", False)
    assert govvault_env.load_dotenv_if_present(str(tmp_path / "nope.env")) is False
