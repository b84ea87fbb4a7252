# src/todochain/api/__main__.py
from __future__ import annotations

import uvicorn

from todochain.env import load_dotenv_if_present


def main() -> None:
    # Load .env early so TODOCHAIN_* vars exist before anything reads them.
    load_dotenv_if_present()

    # Import after dotenv load (prevents "config read before env" surprises)
    from todochain.api.app import create_app
    from todochain.api.structured_logging import configure_structured_logging
    from todochain.config import load_api_config

    configure_structured_logging()
    cfg = load_api_config()

    uvicorn.run(create_app(), host=cfg.host, port=cfg.port, log_level="info")


if __name__ == "__main__":
    main()
