# src/rewardstreams/api/routes_public_parts/epochs.py
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from rewardstreams.api.routes_public_parts.common import _epoch_param, _query

router = APIRouter()

Json = Dict[str, Any]


def _epoch_view(engine, epoch: int) -> Json:
    return {
        "epoch": epoch,
        "start": engine.get_epoch_start_timestamp(epoch),
        "end": engine.get_epoch_end_timestamp(epoch),
    }


@router.get("/epochs/current")
def epochs_current(request: Request) -> Json:
    def _read(engine) -> Json:
        out = _epoch_view(engine, engine.current_epoch())
        out.update({"ok": True, "now": engine.now(), "epoch_duration": engine.epoch_duration})
        return out

    return _query(request, _read)


@router.get("/epochs/{epoch}")
def epochs_get(request: Request, epoch: str) -> Json:
    e = _epoch_param(epoch)
    out = _query(request, lambda engine: _epoch_view(engine, e))
    out["ok"] = True
    return out
