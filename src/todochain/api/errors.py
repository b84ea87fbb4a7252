from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from todochain.ledger.errors import FieldTooLarge, InvalidHandle, StoreError


@dataclass
class ApiError(Exception):
    status_code: int
    code: str
    message: str
    details: Dict[str, Any]

    @staticmethod
    def bad_request(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(400, code, message, details or {})

    @staticmethod
    def internal(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(500, code, message, details or {})

    def to_response(self) -> JSONResponse:
        return JSONResponse(
            status_code=self.status_code,
            content={"ok": False, "error": {"code": self.code, "message": self.message, "details": self.details}},
        )


def _cause_details(err: StoreError) -> Dict[str, Any]:
    out: Dict[str, Any] = {"op": err.op, "cause": type(err.cause).__name__}
    reason = getattr(err.cause, "reason", None)
    if reason is not None:
        out["reason"] = reason
        out["kind"] = getattr(err.cause, "kind", "unknown")
        out["transient"] = bool(getattr(err.cause, "transient", False))
    return out


def install_error_handlers(app: FastAPI) -> None:
    """Render domain errors as {"ok": false, "error": {...}} bodies.

    Client mistakes (bad handle, oversized text) are 400; anything the store
    could not complete is 500.
    """

    @app.exception_handler(ApiError)
    async def _api_error(_request: Request, exc: ApiError) -> JSONResponse:
        return exc.to_response()

    @app.exception_handler(InvalidHandle)
    async def _invalid_handle(_request: Request, exc: InvalidHandle) -> JSONResponse:
        return ApiError.bad_request(exc.code, "Invalid task ID", {"reason": exc.message}).to_response()

    @app.exception_handler(FieldTooLarge)
    async def _too_large(_request: Request, exc: FieldTooLarge) -> JSONResponse:
        details = {"field": exc.field, "size": exc.size, "capacity": exc.capacity}
        return ApiError.bad_request(exc.code, exc.message, details).to_response()

    @app.exception_handler(StoreError)
    async def _store_error(_request: Request, exc: StoreError) -> JSONResponse:
        return ApiError.internal(exc.code, f"Error: {exc.cause}", _cause_details(exc)).to_response()
