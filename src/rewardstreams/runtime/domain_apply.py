# src/rewardstreams/runtime/domain_apply.py
from __future__ import annotations

"""Apply tx envelopes to a reward streams world.

A `World` bundles everything a call can touch: the engine's ledger, the
asset book and the operator connector. `apply_tx_atomic()` snapshots the
world's JSON form before applying and restores it if anything raises, so a
rejected tx never leaves partial writes behind.
"""

import time
from typing import Any, Callable, Dict, Optional

from rewardstreams.ledger.state import RewardLedger
from rewardstreams.runtime import tx_types as T
from rewardstreams.runtime.assets import AssetBook
from rewardstreams.runtime.engine import RewardStreams
from rewardstreams.runtime.errors import StreamsError
from rewardstreams.runtime.identity import OperatorConnector
from rewardstreams.runtime.staking import StakingRewardStreams
from rewardstreams.runtime.tracking import TrackingRewardStreams
from rewardstreams.runtime.tx_types import TxEnvelope

Json = Dict[str, Any]

STATE_VERSION = 1

ENGINE_VARIANTS = {
    "staking": StakingRewardStreams,
    "tracking": TrackingRewardStreams,
}


def _as_int(x: Any, default: int = 0) -> int:
    try:
        return int(x)
    except Exception:
        return int(default)


def _as_dict(x: Any) -> Json:
    return x if isinstance(x, dict) else {}


def _opt_str(x: Any) -> Optional[str]:
    return x.strip() if isinstance(x, str) and x.strip() else None


def _token(payload: Json) -> str:
    t = _opt_str(payload.get("token"))
    if t is None:
        raise StreamsError("invalid_input", "missing_token", {})
    return t


def _opt_amount(payload: Json) -> Optional[int]:
    v = payload.get("amount")
    if v is None or (isinstance(v, str) and v.strip().lower() == "all"):
        return None
    if isinstance(v, bool) or not isinstance(v, int):
        raise StreamsError("invalid_amount", "amount_not_int", {"amount": v})
    return v


class World:
    """Engine + collaborators + bookkeeping persisted as one snapshot."""

    def __init__(
        self,
        *,
        variant: str,
        epoch_duration: int,
        epoch_origin: int = 0,
        custody_address: str = "REWARD_STREAMS",
        clock: Optional[Callable[[], int]] = None,
        allow_mint: bool = False,
    ) -> None:
        cls = ENGINE_VARIANTS.get(str(variant or "").strip().lower())
        if cls is None:
            raise ValueError(f"unknown engine variant: {variant!r}")
        self.variant = str(variant).strip().lower()
        self.allow_mint = bool(allow_mint)
        self._clock: Callable[[], int] = clock or (lambda: int(time.time()))
        self.last_ts = 0
        self.tx_count = 0
        self.last_tx_id = ""

        self.assets = AssetBook()
        self.identity = OperatorConnector()
        self.engine: RewardStreams = cls(
            assets=self.assets,
            epoch_duration=epoch_duration,
            epoch_origin=epoch_origin,
            identity=self.identity,
            custody_address=custody_address,
            clock=self.now,
        )

    @property
    def ledger(self) -> RewardLedger:
        return self.engine.ledger

    def now(self) -> int:
        """Wall clock that never goes backwards across calls or restarts."""
        ts = max(int(self._clock()), self.last_ts)
        self.last_ts = ts
        return ts

    def to_json(self) -> Json:
        return {
            "version": STATE_VERSION,
            "variant": self.variant,
            "epoch_duration": self.engine.epoch_duration,
            "epoch_origin": self.engine.epochs.origin,
            "custody_address": self.engine.address,
            "last_ts": int(self.last_ts),
            "tx_count": int(self.tx_count),
            "last_tx_id": self.last_tx_id,
            "ledger": self.ledger.to_json(),
            "assets": self.assets.to_json(),
            "identity": self.identity.to_json(),
        }

    def load_json(self, raw: Any) -> None:
        """Replace all state in place; the engine object stays the same."""
        d = _as_dict(raw)
        if _as_int(d.get("version"), 0) != STATE_VERSION:
            raise ValueError(f"unsupported state version: {d.get('version')!r}")
        if str(d.get("variant") or "") != self.variant:
            raise ValueError(f"state variant {d.get('variant')!r} does not match engine variant {self.variant!r}")
        if _as_int(d.get("epoch_duration"), 0) != self.engine.epoch_duration:
            raise ValueError("state epoch_duration does not match configuration")

        self.assets = AssetBook.from_json(d.get("assets"))
        self.identity = OperatorConnector.from_json(d.get("identity"))
        self.engine.assets = self.assets
        self.engine.identity = self.identity
        self.engine.ledger = RewardLedger.from_json(d.get("ledger"))
        self.last_ts = _as_int(d.get("last_ts"), 0)
        self.tx_count = _as_int(d.get("tx_count"), 0)
        self.last_tx_id = str(d.get("last_tx_id") or "")


# ----------------------------
# Per-type appliers
# ----------------------------


def _key_register(world: World, env: TxEnvelope) -> Json:
    added = world.identity.register_key(env.signer, str(env.payload.get("pubkey") or ""))
    return {"added": added}


def _operator_set(world: World, env: TxEnvelope) -> Json:
    p = env.payload
    world.identity.set_operator(env.signer, str(p.get("operator") or ""), bool(p.get("authorized", True)))
    return {"operator": p.get("operator"), "authorized": bool(p.get("authorized", True))}


def _asset_mint(world: World, env: TxEnvelope) -> Json:
    if not world.allow_mint:
        raise StreamsError("not_authorized", "mint_disabled", {})
    p = env.payload
    to = _opt_str(p.get("to")) or env.signer
    world.assets.mint(_token(p), to, _as_int(p.get("amount"), -1))
    return {"to": to}


def _asset_approve(world: World, env: TxEnvelope) -> Json:
    p = env.payload
    spender = _opt_str(p.get("spender")) or world.engine.address
    world.assets.approve(_token(p), env.signer, spender, _as_int(p.get("amount"), -1))
    return {"spender": spender}


def _reward_register(world: World, env: TxEnvelope) -> Json:
    p = env.payload
    amounts = p.get("amounts")
    return world.engine.register_reward(
        env.signer,
        str(p.get("rewarded") or ""),
        str(p.get("reward") or ""),
        p.get("start_epoch", 0),
        amounts if isinstance(amounts, list) else [],
        on_behalf_of=_opt_str(p.get("on_behalf_of")),
    )


def _reward_enable(world: World, env: TxEnvelope) -> Json:
    p = env.payload
    changed = world.engine.enable_reward(
        env.signer,
        str(p.get("rewarded") or ""),
        str(p.get("reward") or ""),
        on_behalf_of=_opt_str(p.get("on_behalf_of")),
    )
    return {"changed": changed}


def _reward_disable(world: World, env: TxEnvelope) -> Json:
    p = env.payload
    changed = world.engine.disable_reward(
        env.signer,
        str(p.get("rewarded") or ""),
        str(p.get("reward") or ""),
        bool(p.get("forfeit_recent_reward", False)),
        on_behalf_of=_opt_str(p.get("on_behalf_of")),
    )
    return {"changed": changed}


def _reward_update(world: World, env: TxEnvelope) -> Json:
    p = env.payload
    paid = world.engine.update_reward(
        env.signer,
        str(p.get("rewarded") or ""),
        str(p.get("reward") or ""),
        _opt_str(p.get("recipient")),
        on_behalf_of=_opt_str(p.get("on_behalf_of")),
    )
    return {"spillover_paid": paid}


def _reward_claim(world: World, env: TxEnvelope) -> Json:
    p = env.payload
    paid = world.engine.claim_reward(
        env.signer,
        str(p.get("rewarded") or ""),
        str(p.get("reward") or ""),
        str(p.get("recipient") or ""),
        bool(p.get("forfeit_recent_reward", False)),
        on_behalf_of=_opt_str(p.get("on_behalf_of")),
    )
    return {"paid": paid}


def _spillover_claim(world: World, env: TxEnvelope) -> Json:
    p = env.payload
    paid = world.engine.claim_spillover_reward(
        env.signer,
        str(p.get("rewarded") or ""),
        str(p.get("reward") or ""),
        str(p.get("recipient") or ""),
    )
    return {"paid": paid}


def _stake(world: World, env: TxEnvelope) -> Json:
    p = env.payload
    staked = world.engine.stake(
        env.signer,
        str(p.get("rewarded") or ""),
        _opt_amount(p),
        on_behalf_of=_opt_str(p.get("on_behalf_of")),
    )
    return {"staked": staked}


def _unstake(world: World, env: TxEnvelope) -> Json:
    p = env.payload
    withdrawn = world.engine.unstake(
        env.signer,
        str(p.get("rewarded") or ""),
        _opt_amount(p),
        str(p.get("recipient") or ""),
        bool(p.get("forfeit_recent_reward", False)),
        on_behalf_of=_opt_str(p.get("on_behalf_of")),
    )
    return {"withdrawn": withdrawn}


def _balance_tracker_hook(world: World, env: TxEnvelope) -> Json:
    p = env.payload
    world.engine.balance_tracker_hook(
        env.signer,
        str(p.get("account") or ""),
        p.get("balance"),
        bool(p.get("forfeit_recent_reward", False)),
    )
    return {"account": p.get("account")}


_APPLIERS: Dict[str, Callable[[World, TxEnvelope], Json]] = {
    T.KEY_REGISTER: _key_register,
    T.OPERATOR_SET: _operator_set,
    T.ASSET_MINT: _asset_mint,
    T.ASSET_APPROVE: _asset_approve,
    T.REWARD_REGISTER: _reward_register,
    T.REWARD_ENABLE: _reward_enable,
    T.REWARD_DISABLE: _reward_disable,
    T.REWARD_UPDATE: _reward_update,
    T.REWARD_CLAIM: _reward_claim,
    T.SPILLOVER_CLAIM: _spillover_claim,
    T.STAKE: _stake,
    T.UNSTAKE: _unstake,
    T.BALANCE_TRACKER_HOOK: _balance_tracker_hook,
}


def apply_tx(world: World, env: Any) -> Json:
    """Route one envelope to its applier. Unknown types fail closed."""
    e = TxEnvelope.from_json(env)
    if e.tx_type not in T.SUPPORTED_TX_TYPES:
        raise StreamsError("tx_unimplemented", "unknown_tx_type", {"tx_type": e.tx_type})
    return _APPLIERS[e.tx_type](world, e)


def apply_tx_atomic(world: World, env: Any) -> Json:
    """Apply a tx with fail-atomic semantics.

    On any exception the world is restored from its pre-call snapshot and the
    exception propagates.
    """
    snapshot = world.to_json()
    try:
        return apply_tx(world, env)
    except Exception:
        world.load_json(snapshot)
        raise


__all__ = ["World", "ENGINE_VARIANTS", "apply_tx", "apply_tx_atomic"]
