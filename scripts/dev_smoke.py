#!/usr/bin/env python3

"""Dev smoke test for govvault.

Verifies, against a fresh SQLite db:
  - the vault boots with in-memory instruments
  - FastAPI serves /health + /readyz
  - a deposit is credited, cooldown blocks the immediate withdraw, and voting
    power reads back

Usage:
  python3 scripts/dev_smoke.py
"""

from __future__ import annotations

import os
import tempfile

from fastapi.testclient import TestClient

from govvault.api.app import create_app
from govvault.runtime.vault_boot import build_vault, memory_instruments
from govvault.runtime.vault_config import load_vault_config


def main() -> int:
    with tempfile.TemporaryDirectory(prefix="govvault-smoke-") as td:
        os.environ["GOVVAULT_MODE"] = "dev"
        os.environ["GOVVAULT_DB_PATH"] = os.path.join(td, "govvault.db")
        os.environ.setdefault("GOVVAULT_OWNER", "smoke-owner")

        cfg = load_vault_config()
        insts = memory_instruments(cfg.custody_account)
        insts["A"].mint("smoke-user", 1_000)  # type: ignore[attr-defined]

        app = create_app(boot_runtime=False)
        app.state.vault = build_vault(cfg, instruments=insts)

        c = TestClient(app)
        r = c.get("/health")
        assert r.status_code == 200, r.text
        assert bool(r.json().get("ok")) is True

        r = c.get("/readyz")
        assert r.status_code == 200, r.text
        assert bool(r.json().get("ok")) is True

        hdr = {"X-Vault-Account": "smoke-user"}
        r = c.post("/v1/vault/deposit", json={"amount": 500, "instrument": "A"}, headers=hdr)
        assert r.status_code == 200, r.text

        r = c.post("/v1/vault/withdraw", json={"amount": 100, "instrument": "A"}, headers=hdr)
        assert r.status_code == 409, r.text

        vp = c.get("/v1/accounts/smoke-user/voting-power").json()
        assert int(vp.get("voting_power") or 0) == 500, vp

        print("OK: health/ready + deposit/cooldown/voting-power", {"voting_power": vp["voting_power"]})
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
