# src/govvault/api/__main__.py
from __future__ import annotations

import uvicorn

from govvault.env import load_dotenv_if_present


def main() -> None:
    # Load .env early so GOVVAULT_* vars exist before anything reads them.
    load_dotenv_if_present()

    # Import after dotenv load (prevents "config read before env" surprises)
    from govvault.api.app import create_app
    from govvault.api.structured_logging import configure_structured_logging
    from govvault.runtime.vault_config import load_vault_config

    cfg = load_vault_config()
    configure_structured_logging(cfg.log_level)
    uvicorn.run(create_app(), host=cfg.api_host, port=int(cfg.api_port), log_level=cfg.log_level.lower())


if __name__ == "__main__":
    main()
