# src/rewardstreams/api/errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from rewardstreams.runtime.errors import StreamsError

# StreamsError codes that mean "the caller may not do this" rather than "bad input".
_FORBIDDEN_CODES = {"not_authorized", "bad_signature"}


@dataclass
class ApiError(Exception):
    status_code: int
    code: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def bad_request(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(400, code, message, details or {})

    @staticmethod
    def forbidden(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(403, code, message, details or {})

    @staticmethod
    def not_found(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(404, code, message, details or {})

    @staticmethod
    def internal(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(500, code, message, details or {})

    @staticmethod
    def from_streams_error(e: StreamsError) -> "ApiError":
        status = 403 if e.code in _FORBIDDEN_CODES else 400
        return ApiError(status, e.code, e.reason, dict(e.details or {}))

    def to_json(self) -> Dict[str, Any]:
        return {"ok": False, "error": {"code": self.code, "message": self.message, "details": self.details}}


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_json())
