# src/rewardstreams/runtime/staking.py
from __future__ import annotations

"""Staking variant: the weighted balance is what an account has deposited."""

from typing import Optional

from rewardstreams.runtime.engine import RewardStreams, _require_id, _require_int, _require_recipient
from rewardstreams.runtime.errors import StreamsError


class StakingRewardStreams(RewardStreams):
    variant = "staking"

    def stake(self, caller: str, rewarded: str, amount: Optional[int], *, on_behalf_of: Optional[str] = None) -> int:
        """Deposit `amount` of `rewarded` (None = whole wallet balance). Returns the amount staked."""
        account = self._resolve(caller, on_behalf_of)
        rewarded = _require_id(rewarded, "rewarded")

        if amount is None:
            amt = int(self.assets.balance_of(rewarded, account))
        else:
            amt = _require_int(amount, "amount")
        if amt <= 0:
            raise StreamsError("invalid_amount", "stake_not_positive", {"account": account, "amount": amt})

        self._pull(rewarded, account, amt)

        old = self.balance_of(account, rewarded)
        self._apply_balance_change(account, rewarded, old + amt)
        return amt

    def unstake(
        self,
        caller: str,
        rewarded: str,
        amount: Optional[int],
        recipient: str,
        forfeit_recent_reward: bool = False,
        *,
        on_behalf_of: Optional[str] = None,
    ) -> int:
        """Withdraw `amount` (None = everything) to `recipient`. Returns the amount withdrawn."""
        account = self._resolve(caller, on_behalf_of)
        rewarded = _require_id(rewarded, "rewarded")
        to = _require_recipient(recipient)

        old = self.balance_of(account, rewarded)
        amt = old if amount is None else _require_int(amount, "amount")
        if amt <= 0 or amt > old:
            raise StreamsError(
                "invalid_amount",
                "unstake_out_of_range",
                {"account": account, "amount": amt, "staked": old},
            )

        self._apply_balance_change(account, rewarded, old - amt, bool(forfeit_recent_reward))
        self.assets.transfer(rewarded, self.address, to, amt)
        return amt
