from __future__ import annotations

from typing import Optional

from fastapi import FastAPI

from todochain.api.errors import install_error_handlers
from todochain.api.routes_tasks import router as tasks_router
from todochain.api.security import RequestSizeLimitMiddleware
from todochain.api.structured_logging import RequestLogMiddleware
from todochain.config import load_api_config, load_ledger_config
from todochain.ledger.store import RecordStore
from todochain.ledger.store import build_store as _build_store


def build_store() -> RecordStore:
    """Build the RecordStore for API runtime.

    This wrapper exists so tests can monkeypatch `todochain.api.app.build_store`
    without reaching into ledger modules.
    """
    return _build_store()


def create_app(*, boot_runtime: bool = True, store: Optional[RecordStore] = None) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): load ledger config + payer keypair, attach a store
      - False: keep lightweight for unit tests / import-time validation

    store:
      - an explicit RecordStore (e.g. backed by the in-memory ledger) wins
        over boot_runtime.
    """
    cfg = load_api_config()

    if cfg.mode == "prod":
        app = FastAPI(title="todochain API", docs_url=None, redoc_url=None, openapi_url=None)
    else:
        app = FastAPI(title="todochain API")

    app.state.cfg = cfg

    if store is not None:
        app.state.ledger_cfg = None
        app.state.store = store
    elif boot_runtime:
        # Fails fast on a bad config or an unreadable keypair.
        app.state.ledger_cfg = load_ledger_config()
        app.state.store = build_store()
    else:
        app.state.ledger_cfg = None
        app.state.store = None

    install_error_handlers(app)

    # --- Middleware ---
    # Size limiter sits inside the request logger so rejected requests are logged too.
    app.add_middleware(RequestSizeLimitMiddleware, max_bytes=cfg.max_request_bytes)
    app.add_middleware(RequestLogMiddleware)

    # --- Routers ---
    app.include_router(tasks_router, tags=["tasks"])

    return app
