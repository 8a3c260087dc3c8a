# src/rewardstreams/runtime/state_invariants.py
from __future__ import annotations

"""Ledger invariants.

`check_ledger_invariants()` is a read-only audit that returns human readable
violations. The executor runs it after every applied tx when
`check_invariants` is on and refuses to commit a state that fails it.

Checked:

  - total_claimed <= total_registered, all counters non-negative
  - total_eligible == sum of balances of accounts that enabled the reward
  - every account snapshot <= its distribution's accumulator
  - enabled sets respect MAX_REWARDS_ENABLED
  - (with assets) custody holds at least the outstanding reward, plus staked
    principal for the staking variant
"""

from typing import Any, Dict, List, Optional

from rewardstreams.ledger.constants import MAX_REWARDS_ENABLED
from rewardstreams.ledger.state import RewardLedger
from rewardstreams.runtime.assets import FungibleAssets
from rewardstreams.runtime.errors import StreamsError

Json = Dict[str, Any]


def check_ledger_invariants(
    ledger: RewardLedger,
    *,
    assets: Optional[FungibleAssets] = None,
    custody_address: str = "",
    staking: bool = False,
) -> List[str]:
    out: List[str] = []
    eligible: Dict[tuple, int] = {}

    for account, rewarded, acct in ledger.iter_accounts():
        if acct.balance < 0:
            out.append(f"negative balance account={account} rewarded={rewarded}")
        if len(acct.enabled_rewards) > MAX_REWARDS_ENABLED:
            out.append(f"too many enabled rewards account={account} rewarded={rewarded}")
        for reward in acct.enabled_rewards:
            key = (rewarded, reward)
            eligible[key] = eligible.get(key, 0) + int(acct.balance)
        for reward, earn in acct.earned.items():
            dist = ledger.find_distribution(rewarded, reward)
            acc = dist.accumulator if dist is not None else 0
            if earn.accumulator > acc:
                out.append(
                    f"snapshot ahead of accumulator account={account} rewarded={rewarded} reward={reward}"
                )
            if earn.claimable < 0:
                out.append(f"negative claimable account={account} rewarded={rewarded} reward={reward}")

    outstanding: Dict[str, int] = {}
    for rewarded, reward, dist in ledger.iter_distributions():
        tag = f"rewarded={rewarded} reward={reward}"
        for name in ("accumulator", "total_eligible", "total_registered", "total_claimed", "spillover_claimable"):
            if int(getattr(dist, name)) < 0:
                out.append(f"negative {name} {tag}")
        if dist.total_claimed > dist.total_registered:
            out.append(f"claimed exceeds registered {tag}")
        want = eligible.pop((rewarded, reward), 0)
        if dist.total_eligible != want:
            out.append(f"total_eligible mismatch {tag} have={dist.total_eligible} want={want}")
        outstanding[reward] = outstanding.get(reward, 0) + dist.total_registered - dist.total_claimed

    for (rewarded, reward), want in sorted(eligible.items()):
        if want:
            out.append(f"eligible balance without distribution rewarded={rewarded} reward={reward}")

    if assets is not None and custody_address:
        if staking:
            for _account, rewarded, acct in ledger.iter_accounts():
                outstanding[rewarded] = outstanding.get(rewarded, 0) + int(acct.balance)
        for token, need in sorted(outstanding.items()):
            have = int(assets.balance_of(token, custody_address))
            if have < need:
                out.append(f"custody shortfall token={token} have={have} need={need}")

    return out


def ensure_invariants(
    ledger: RewardLedger,
    *,
    assets: Optional[FungibleAssets] = None,
    custody_address: str = "",
    staking: bool = False,
) -> None:
    violations = check_ledger_invariants(ledger, assets=assets, custody_address=custody_address, staking=staking)
    if violations:
        raise StreamsError("invariant_violation", "ledger_invariants_failed", {"violations": violations})


__all__ = ["check_ledger_invariants", "ensure_invariants"]
