# src/rewardstreams/api/routes_public_parts/tx.py
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from rewardstreams.api.errors import ApiError
from rewardstreams.api.routes_public_parts.common import _executor, _id_param
from rewardstreams.api.schemas import TxSubmitRequest
from rewardstreams.runtime.errors import StreamsError

router = APIRouter()

Json = Dict[str, Any]


@router.post("/tx/submit")
def tx_submit(request: Request, body: TxSubmitRequest) -> Json:
    """Apply a signed tx envelope.

    Returns:
      { ok, tx_id, receipt }
    Rejections map to 400 (bad input) or 403 (auth) with the runtime's error code.
    """
    ex = _executor(request)
    try:
        receipt = ex.submit(body.model_dump())
    except StreamsError as e:
        raise ApiError.from_streams_error(e) from e
    return {"ok": True, "tx_id": receipt["tx_id"], "receipt": receipt}


@router.get("/tx/{tx_id}")
def tx_get(request: Request, tx_id: str) -> Json:
    t = _id_param(tx_id, "tx_id")
    receipt = _executor(request).get_receipt(t)
    if receipt is None:
        raise ApiError.not_found("tx_not_found", "no receipt for tx_id", {"tx_id": t})
    return {"ok": True, "tx_id": t, "receipt": receipt}
