# src/rewardstreams/ledger/state.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional, Tuple

from rewardstreams.ledger.types import AccountStorage, Distribution, Json, _as_dict


@dataclass
class RewardLedger:
    """All distribution and account records of one reward streams instance.

    distributions[rewarded][reward] -> Distribution
    accounts[account][rewarded]     -> AccountStorage

    The `distribution()` / `account()` accessors create records on first touch
    (records are never deleted). Read paths use `find_*`, which never mutate.
    """

    distributions: Dict[str, Dict[str, Distribution]] = field(default_factory=dict)
    accounts: Dict[str, Dict[str, AccountStorage]] = field(default_factory=dict)

    def distribution(self, rewarded: str, reward: str) -> Distribution:
        by_reward = self.distributions.setdefault(rewarded, {})
        dist = by_reward.get(reward)
        if dist is None:
            dist = Distribution()
            by_reward[reward] = dist
        return dist

    def find_distribution(self, rewarded: str, reward: str) -> Optional[Distribution]:
        return self.distributions.get(rewarded, {}).get(reward)

    def account(self, account: str, rewarded: str) -> AccountStorage:
        by_rewarded = self.accounts.setdefault(account, {})
        acct = by_rewarded.get(rewarded)
        if acct is None:
            acct = AccountStorage()
            by_rewarded[rewarded] = acct
        return acct

    def find_account(self, account: str, rewarded: str) -> Optional[AccountStorage]:
        return self.accounts.get(account, {}).get(rewarded)

    def iter_distributions(self) -> Iterator[Tuple[str, str, Distribution]]:
        for rewarded in sorted(self.distributions):
            for reward in sorted(self.distributions[rewarded]):
                yield rewarded, reward, self.distributions[rewarded][reward]

    def iter_accounts(self) -> Iterator[Tuple[str, str, AccountStorage]]:
        for account in sorted(self.accounts):
            for rewarded in sorted(self.accounts[account]):
                yield account, rewarded, self.accounts[account][rewarded]

    def to_json(self) -> Json:
        return {
            "distributions": {
                rewarded: {reward: d.to_json() for reward, d in sorted(by_reward.items())}
                for rewarded, by_reward in sorted(self.distributions.items())
            },
            "accounts": {
                account: {rewarded: a.to_json() for rewarded, a in sorted(by_rewarded.items())}
                for account, by_rewarded in sorted(self.accounts.items())
            },
        }

    @classmethod
    def from_json(cls, raw: Any) -> "RewardLedger":
        d = _as_dict(raw)
        led = cls()
        for rewarded, by_reward in _as_dict(d.get("distributions")).items():
            for reward, dj in _as_dict(by_reward).items():
                led.distributions.setdefault(str(rewarded), {})[str(reward)] = Distribution.from_json(dj)
        for account, by_rewarded in _as_dict(d.get("accounts")).items():
            for rewarded, aj in _as_dict(by_rewarded).items():
                led.accounts.setdefault(str(account), {})[str(rewarded)] = AccountStorage.from_json(aj)
        return led
