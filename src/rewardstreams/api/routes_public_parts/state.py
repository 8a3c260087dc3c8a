# src/rewardstreams/api/routes_public_parts/state.py
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from rewardstreams.api.errors import ApiError
from rewardstreams.api.routes_public_parts.common import _executor

router = APIRouter()

Json = Dict[str, Any]


@router.get("/state/snapshot")
def state_snapshot(request: Request) -> Json:
    """Full world snapshot. Debug aid; not served in prod mode."""
    ex = _executor(request)
    if ex.config.is_prod:
        raise ApiError.not_found("not_found", "state snapshot is disabled in prod", {})
    return {"ok": True, "state": ex.read_state()}
