# src/rewardstreams/api/routes_public_parts/accounts.py
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from rewardstreams.api.routes_public_parts.common import _id_param, _query

router = APIRouter()

Json = Dict[str, Any]


@router.get("/accounts/{account}/{rewarded}")
def account_position(request: Request, account: str, rewarded: str) -> Json:
    a = _id_param(account, "account")
    r = _id_param(rewarded, "rewarded")

    def _read(engine) -> Json:
        enabled = engine.enabled_rewards(a, r)
        return {
            "ok": True,
            "account": a,
            "rewarded": r,
            "balance": engine.balance_of(a, r),
            "enabled_rewards": enabled,
            "earned": {w: engine.earned_reward(a, r, w) for w in enabled},
        }

    return _query(request, _read)


@router.get("/accounts/{account}/{rewarded}/{reward}/earned")
def account_earned(request: Request, account: str, rewarded: str, reward: str, forfeit: bool = False) -> Json:
    a = _id_param(account, "account")
    r = _id_param(rewarded, "rewarded")
    w = _id_param(reward, "reward")
    earned = _query(request, lambda engine: engine.earned_reward(a, r, w, forfeit))
    return {"ok": True, "account": a, "rewarded": r, "reward": w, "forfeit": forfeit, "earned": earned}
