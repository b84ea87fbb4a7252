# src/todochain/api/structured_logging.py
from __future__ import annotations

import logging
import os
import re
import time
import uuid
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from todochain.ledger.ledger_logging import log_event

_FALSEY = {"0", "false", "no", "off"}

# Route shape -> store operation, for log lines.
_TASK_PATH = re.compile(r"^/tasks(?:/(?P<handle>[^/]+))?/?$")
_OPS = {
    ("POST", False): "task_create",
    ("GET", True): "task_read",
    ("PUT", True): "task_update",
    ("DELETE", True): "task_delete",
}


class _PassthroughFormatter(logging.Formatter):
    """log_event already renders JSONL; tag third-party records with their logger."""

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        if record.name.startswith("todochain"):
            return msg
        return f"{record.levelname} {record.name}: {msg}"


def configure_structured_logging(level_name: Optional[str] = None) -> None:
    """Send todochain JSONL events to stdout at TODOCHAIN_LOG_LEVEL (default INFO).

    Re-running only adjusts the level.
    """
    name = (level_name or os.environ.get("TODOCHAIN_LOG_LEVEL") or "INFO").strip().upper()
    level = logging.getLevelName(name)
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)
    if any(getattr(h, "_todochain", False) for h in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(_PassthroughFormatter())
    handler._todochain = True  # type: ignore[attr-defined]
    root.addHandler(handler)


def classify_request(method: str, path: str) -> tuple[Optional[str], Optional[str]]:
    """Return (operation, handle) for task routes, (None, None) otherwise."""
    m = _TASK_PATH.match(path or "")
    if m is None:
        return None, None
    handle = m.group("handle")
    return _OPS.get((method.upper(), handle is not None)), handle


class RequestLogMiddleware(BaseHTTPMiddleware):
    """One `http_request` event per request, carrying the task operation and handle.

    Honours an incoming x-request-id and echoes it back. TODOCHAIN_LOG_REQUESTS=0
    turns the event off; the header is still set.
    """

    def __init__(self, app) -> None:
        super().__init__(app)
        flag = (os.environ.get("TODOCHAIN_LOG_REQUESTS") or "1").strip().lower()
        self._log = flag not in _FALSEY
        self._logger = logging.getLogger("todochain.http")

    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = rid
        t0 = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            self._emit(request, rid, t0, status=500, error=type(e).__name__)
            raise

        response.headers.setdefault("x-request-id", rid)
        self._emit(request, rid, t0, status=response.status_code)
        return response

    def _emit(self, request: Request, rid: str, t0: float, *, status: int, error: Optional[str] = None) -> None:
        if not self._log:
            return
        op, handle = classify_request(request.method, request.url.path)
        level = logging.WARNING if status >= 500 else logging.INFO
        log_event(
            self._logger,
            "http_request",
            level=level,
            request_id=rid,
            method=request.method,
            path=request.url.path,
            op=op,
            handle=handle,
            status=int(status),
            elapsed_ms=round((time.perf_counter() - t0) * 1000, 1),
            error=error,
        )
