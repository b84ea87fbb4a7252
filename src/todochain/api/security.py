from __future__ import annotations

from typing import Iterable

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

# Request bodies for the task routes are tiny JSON objects; the largest legal
# one is a create carrying a full-capacity text.
_BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject task request bodies above max_bytes with a 413.

    max_bytes <= 0 disables the check. Only paths under `guarded_prefixes`
    are inspected.
    """

    def __init__(self, app, *, max_bytes: int, guarded_prefixes: Iterable[str] = ("/tasks",)):
        super().__init__(app)
        self.max_bytes = int(max_bytes)
        self.guarded_prefixes = tuple(guarded_prefixes)

    def _guarded(self, request: Request) -> bool:
        if self.max_bytes <= 0 or request.method.upper() not in _BODY_METHODS:
            return False
        return request.url.path.startswith(self.guarded_prefixes)

    def _declared_length(self, request: Request) -> int | None:
        raw = request.headers.get("content-length")
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            return None

    def _reject(self, size: int) -> JSONResponse:
        return JSONResponse(
            status_code=413,
            content={
                "ok": False,
                "error": {
                    "code": "request_too_large",
                    "message": "Request body too large",
                    "details": {"size": size, "limit": self.max_bytes},
                },
            },
        )

    async def dispatch(self, request: Request, call_next):
        if not self._guarded(request):
            return await call_next(request)

        declared = self._declared_length(request)
        if declared is not None and declared > self.max_bytes:
            return self._reject(declared)

        # Chunked uploads carry no content-length; measure the buffered body.
        body = await request.body()
        if len(body) > self.max_bytes:
            return self._reject(len(body))

        return await call_next(request)
