# src/rewardstreams/api/structured_logging.py
from __future__ import annotations

import logging
import os
import time
import uuid
from typing import Any, Dict, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from rewardstreams.runtime.log import log_event

Json = Dict[str, Any]

_CONFIGURED_ATTR = "_rewardstreams_configured"


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def configure_structured_logging() -> None:
    """One JSON line per record on stderr, level from REWARDSTREAMS_LOG_LEVEL.

    Calling again only re-reads the level.
    """
    level = logging.getLevelName((os.environ.get("REWARDSTREAMS_LOG_LEVEL") or "INFO").strip().upper())
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)
    if getattr(root, _CONFIGURED_ATTR, False):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.handlers = [handler]
    setattr(root, _CONFIGURED_ATTR, True)


class RequestLogMiddleware(BaseHTTPMiddleware):
    """Logs one `http_request` event per call and echoes `x-request-id`.

    REWARDSTREAMS_LOG_REQUESTS=0 turns logging off (the header is still set).
    Requests slower than REWARDSTREAMS_SLOW_REQUEST_MS (default 1000) are
    logged at WARNING.
    """

    def __init__(self, app) -> None:
        super().__init__(app)
        self._enabled = _env_flag("REWARDSTREAMS_LOG_REQUESTS", True)
        try:
            self._slow_ms = int((os.environ.get("REWARDSTREAMS_SLOW_REQUEST_MS") or "1000").strip())
        except ValueError:
            self._slow_ms = 1000
        self._logger = logging.getLogger("rewardstreams.http")

    @staticmethod
    def _instance_id(request: Request) -> str:
        ex = getattr(request.app.state, "executor", None)
        return str(getattr(ex, "instance_id", "") or "")

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id
        started = time.monotonic()

        status = 500
        err: Optional[str] = None
        try:
            response = await call_next(request)
            status = int(response.status_code)
            response.headers.setdefault("x-request-id", request_id)
            return response
        except Exception as e:
            err = type(e).__name__
            raise
        finally:
            if self._enabled:
                took_ms = int((time.monotonic() - started) * 1000)
                log_event(
                    self._logger,
                    "http_request",
                    level=logging.WARNING if (took_ms >= self._slow_ms or status >= 500) else logging.INFO,
                    request_id=request_id,
                    instance_id=self._instance_id(request),
                    method=request.method,
                    path=request.url.path,
                    status=status,
                    duration_ms=took_ms,
                    error=err,
                )
