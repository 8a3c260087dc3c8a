# src/rewardstreams/api/routes_public_parts/health.py
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from rewardstreams import __version__

router = APIRouter()

Json = Dict[str, Any]


@router.get("/health")
def health(request: Request) -> Json:
    """Liveness plus a small amount of identity. Never touches the database."""
    ex = getattr(request.app.state, "executor", None)
    out: Json = {"ok": True, "version": __version__, "executor": ex is not None}
    if ex is not None:
        out.update(
            {
                "instance_id": ex.instance_id,
                "variant": ex.world.variant,
                "mode": ex.config.mode,
                "tx_count": ex.world.tx_count,
            }
        )
    return out
