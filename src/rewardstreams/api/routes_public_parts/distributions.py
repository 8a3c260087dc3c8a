# src/rewardstreams/api/routes_public_parts/distributions.py
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from rewardstreams.api.routes_public_parts.common import _epoch_param, _id_param, _query

router = APIRouter()

Json = Dict[str, Any]


@router.get("/distributions/{rewarded}/{reward}")
def distribution_get(request: Request, rewarded: str, reward: str) -> Json:
    r = _id_param(rewarded, "rewarded")
    w = _id_param(reward, "reward")
    info = _query(request, lambda engine: engine.distribution_info(r, w))
    return {"ok": True, "distribution": info}


@router.get("/distributions/{rewarded}/{reward}/amounts/{epoch}")
def distribution_amount(request: Request, rewarded: str, reward: str, epoch: str) -> Json:
    r = _id_param(rewarded, "rewarded")
    w = _id_param(reward, "reward")
    e = _epoch_param(epoch)
    amount = _query(request, lambda engine: engine.reward_amount(r, w, e))
    return {"ok": True, "rewarded": r, "reward": w, "epoch": e, "amount": amount}
