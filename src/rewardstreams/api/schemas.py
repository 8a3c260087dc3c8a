# src/rewardstreams/api/schemas.py
from __future__ import annotations

"""Pydantic request schemas for the public API.

These exist only for HTTP input validation; payload semantics are enforced
by the runtime appliers.
"""

from typing import Any, Dict

from pydantic import BaseModel, Field


class TxSubmitRequest(BaseModel):
    tx_type: str = Field(..., min_length=1, description="Tx type, e.g. REWARD_CLAIM")
    signer: str = Field(..., min_length=1, description="Account submitting the tx")
    nonce: int = Field(..., gt=0, description="Strictly increasing per signer")
    payload: Dict[str, Any] = Field(default_factory=dict)
    sig: str = Field(default="", description="Hex Ed25519 signature over the canonical tx message")

    model_config = {"extra": "ignore"}
