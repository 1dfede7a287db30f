from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure local "src/" takes precedence over any globally-installed "govvault" package.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

src_str = str(SRC)
if src_str not in sys.path:
    sys.path.insert(0, src_str)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    # Tests run in dev posture with fast SQLite durability; never read a stray config.
    monkeypatch.setenv("GOVVAULT_MODE", "dev")
    monkeypatch.delenv("GOVVAULT_CONFIG_PATH", raising=False)
    monkeypatch.delenv("GOVVAULT_METRICS_ENABLED", raising=False)

    from govvault.runtime import metrics

    metrics.reset()
