# src/rewardstreams/api/security.py
from __future__ import annotations

import os
from typing import Optional, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

DEFAULT_MAX_REQUEST_BYTES = 256_000

_BODY_METHODS = {"POST", "PUT", "PATCH"}


def _max_request_bytes() -> int:
    raw = (os.environ.get("REWARDSTREAMS_MAX_REQUEST_BYTES") or "").strip()
    try:
        return int(raw) if raw else DEFAULT_MAX_REQUEST_BYTES
    except ValueError:
        return DEFAULT_MAX_REQUEST_BYTES


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Rejects oversize request bodies with 413 `tx_too_large`.

    Checks the declared Content-Length first, then the buffered body so a
    chunked upload cannot slip past. Limit from REWARDSTREAMS_MAX_REQUEST_BYTES;
    REWARDSTREAMS_SIZE_LIMIT_DISABLE=1 turns the check off.
    """

    def __init__(
        self,
        app,
        *,
        max_bytes: Optional[int] = None,
        exempt_prefixes: Tuple[str, ...] = ("/docs", "/openapi.json", "/v1/health"),
    ):
        super().__init__(app)
        disabled = (os.environ.get("REWARDSTREAMS_SIZE_LIMIT_DISABLE") or "").strip().lower()
        self._enabled = disabled not in {"1", "true", "yes", "on"}
        self._max_bytes = int(max_bytes) if max_bytes is not None else _max_request_bytes()
        self._exempt_prefixes = exempt_prefixes

    def _too_large(self, size: int) -> JSONResponse:
        return JSONResponse(
            status_code=413,
            content={
                "ok": False,
                "error": {
                    "code": "tx_too_large",
                    "message": "Request body too large",
                    "details": {"size": size, "max_bytes": self._max_bytes},
                },
            },
        )

    def _exempt(self, request: Request) -> bool:
        path = request.url.path or ""
        return any(path.startswith(p) for p in self._exempt_prefixes)

    async def dispatch(self, request: Request, call_next):
        if not self._enabled or self._exempt(request):
            return await call_next(request)

        declared = (request.headers.get("content-length") or "").strip()
        if declared.isdigit() and int(declared) > self._max_bytes:
            return self._too_large(int(declared))

        if request.method.upper() in _BODY_METHODS:
            body = await request.body()
            if len(body) > self._max_bytes:
                return self._too_large(len(body))

        return await call_next(request)
