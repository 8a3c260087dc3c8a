# src/rewardstreams/runtime/tx_types.py
from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Dict

Json = Dict[str, Any]

KEY_REGISTER = "KEY_REGISTER"
OPERATOR_SET = "OPERATOR_SET"
ASSET_MINT = "ASSET_MINT"
ASSET_APPROVE = "ASSET_APPROVE"
REWARD_REGISTER = "REWARD_REGISTER"
REWARD_ENABLE = "REWARD_ENABLE"
REWARD_DISABLE = "REWARD_DISABLE"
REWARD_UPDATE = "REWARD_UPDATE"
REWARD_CLAIM = "REWARD_CLAIM"
SPILLOVER_CLAIM = "SPILLOVER_CLAIM"
STAKE = "STAKE"
UNSTAKE = "UNSTAKE"
BALANCE_TRACKER_HOOK = "BALANCE_TRACKER_HOOK"

SUPPORTED_TX_TYPES = (
    KEY_REGISTER,
    OPERATOR_SET,
    ASSET_MINT,
    ASSET_APPROVE,
    REWARD_REGISTER,
    REWARD_ENABLE,
    REWARD_DISABLE,
    REWARD_UPDATE,
    REWARD_CLAIM,
    SPILLOVER_CLAIM,
    STAKE,
    UNSTAKE,
    BALANCE_TRACKER_HOOK,
)


def _json_canonical(obj: Any) -> bytes:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


@dataclass(frozen=True)
class TxEnvelope:
    tx_type: str
    signer: str
    nonce: int
    payload: Dict[str, Any] = field(default_factory=dict)
    sig: str = ""

    @staticmethod
    def from_json(j: Any) -> "TxEnvelope":
        if isinstance(j, TxEnvelope):
            return j
        if not isinstance(j, dict):
            j = dict(j)  # type: ignore[arg-type]
        return TxEnvelope(
            tx_type=str(j.get("tx_type", "")).strip().upper(),
            signer=str(j.get("signer", "")).strip(),
            nonce=int(j.get("nonce", 0)),
            payload=dict(j.get("payload", {}) or {}),
            sig=str(j.get("sig", "") or ""),
        )

    def to_json(self) -> Json:
        return {
            "tx_type": self.tx_type,
            "signer": self.signer,
            "nonce": self.nonce,
            "payload": self.payload,
            "sig": self.sig,
        }


def compute_tx_id(instance_id: str, env: TxEnvelope) -> str:
    """sha256 over instance, type, signer, nonce and payload. The sig is excluded."""
    obj: Json = {
        "instance_id": str(instance_id),
        "tx_type": env.tx_type,
        "signer": env.signer,
        "nonce": int(env.nonce),
        "payload": env.payload if isinstance(env.payload, dict) else {},
    }
    return hashlib.sha256(_json_canonical(obj)).hexdigest()
