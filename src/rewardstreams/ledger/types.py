# src/rewardstreams/ledger/types.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

from rewardstreams.ledger.enabled_set import EnabledRewards

Json = Dict[str, Any]


def _as_int(x: Any, default: int = 0) -> int:
    try:
        return int(x)
    except Exception:
        return int(default)


def _as_dict(x: Any) -> Json:
    return x if isinstance(x, dict) else {}


@dataclass
class Distribution:
    """Accounting unit for one (rewarded, reward) pair.

    Settlement is a no-op until the first registration (`funded`). 0 is a
    valid `last_updated` when the epoch origin is 0, so it is not a marker. `spillover_claimable` holds reward that accrued while no
    eligible weight existed. It belongs to no account and is harvested through
    the dedicated spillover claim.
    """

    last_updated: int = 0
    accumulator: int = 0
    total_eligible: int = 0
    total_registered: int = 0
    total_claimed: int = 0
    spillover_claimable: int = 0
    amounts: Dict[int, int] = field(default_factory=dict)

    @property
    def funded(self) -> bool:
        return int(self.total_registered) > 0

    def amount_at(self, epoch: int) -> int:
        return int(self.amounts.get(int(epoch), 0))

    def to_json(self) -> Json:
        return {
            "last_updated": int(self.last_updated),
            "accumulator": int(self.accumulator),
            "total_eligible": int(self.total_eligible),
            "total_registered": int(self.total_registered),
            "total_claimed": int(self.total_claimed),
            "spillover_claimable": int(self.spillover_claimable),
            # JSON object keys must be strings.
            "amounts": {str(e): int(a) for e, a in sorted(self.amounts.items()) if int(a) != 0},
        }

    @classmethod
    def from_json(cls, raw: Any) -> "Distribution":
        d = _as_dict(raw)
        amounts: Dict[int, int] = {}
        for k, v in _as_dict(d.get("amounts")).items():
            a = _as_int(v, 0)
            if a:
                amounts[_as_int(k, 0)] = a
        return cls(
            last_updated=_as_int(d.get("last_updated"), 0),
            accumulator=_as_int(d.get("accumulator"), 0),
            total_eligible=_as_int(d.get("total_eligible"), 0),
            total_registered=_as_int(d.get("total_registered"), 0),
            total_claimed=_as_int(d.get("total_claimed"), 0),
            spillover_claimable=_as_int(d.get("spillover_claimable"), 0),
            amounts=amounts,
        )


@dataclass
class EarnStorage:
    """Per (account, rewarded, reward): accumulator snapshot + unpaid reward."""

    accumulator: int = 0
    claimable: int = 0

    def to_json(self) -> Json:
        return {"accumulator": int(self.accumulator), "claimable": int(self.claimable)}

    @classmethod
    def from_json(cls, raw: Any) -> "EarnStorage":
        d = _as_dict(raw)
        return cls(accumulator=_as_int(d.get("accumulator"), 0), claimable=_as_int(d.get("claimable"), 0))


@dataclass
class AccountStorage:
    """Per (account, rewarded): weighted balance, enabled rewards, earnings."""

    balance: int = 0
    enabled_rewards: EnabledRewards = field(default_factory=EnabledRewards)
    earned: Dict[str, EarnStorage] = field(default_factory=dict)

    def earn(self, reward: str) -> EarnStorage:
        es = self.earned.get(reward)
        if es is None:
            es = EarnStorage()
            self.earned[reward] = es
        return es

    def weight_for(self, reward: str) -> int:
        """Balance that accrues `reward`: zero unless the reward is enabled."""
        return int(self.balance) if reward in self.enabled_rewards else 0

    def to_json(self) -> Json:
        return {
            "balance": int(self.balance),
            "enabled_rewards": self.enabled_rewards.to_list(),
            "earned": {r: es.to_json() for r, es in sorted(self.earned.items())},
        }

    @classmethod
    def from_json(cls, raw: Any) -> "AccountStorage":
        d = _as_dict(raw)
        return cls(
            balance=_as_int(d.get("balance"), 0),
            enabled_rewards=EnabledRewards.from_list(d.get("enabled_rewards")),
            earned={str(r): EarnStorage.from_json(v) for r, v in _as_dict(d.get("earned")).items()},
        )
