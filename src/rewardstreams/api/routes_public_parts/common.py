# src/rewardstreams/api/routes_public_parts/common.py
from __future__ import annotations

from typing import Any, Callable, Dict

from fastapi import Request

from rewardstreams.api.errors import ApiError
from rewardstreams.runtime.engine import RewardStreams

Json = Dict[str, Any]


def _executor(request: Request):
    ex = getattr(request.app.state, "executor", None)
    if ex is None:
        raise ApiError.internal("not_ready", "executor not attached to app.state", {})
    return ex


def _query(request: Request, fn: Callable[[RewardStreams], Any]) -> Any:
    return _executor(request).query(fn)


def _id_param(v: Any, name: str) -> str:
    s = str(v or "").strip()
    if not s:
        raise ApiError.bad_request("bad_request", f"missing {name}", {})
    return s


def _epoch_param(v: Any) -> int:
    try:
        e = int(str(v).strip())
    except (TypeError, ValueError):
        raise ApiError.bad_request("bad_request", "epoch must be an integer", {"epoch": v}) from None
    if e < 0:
        raise ApiError.bad_request("bad_request", "epoch must be >= 0", {"epoch": e})
    return e
