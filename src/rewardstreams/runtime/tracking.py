# src/rewardstreams/runtime/tracking.py
from __future__ import annotations

"""Tracking variant: balances are pushed by the asset that holds them.

The rewarded asset calls `balance_tracker_hook()` whenever a holder's balance
changes. The hook must not break the asset's own transfers, so bad input is
coerced rather than rejected.
"""

import logging
from typing import Any

from rewardstreams.runtime.engine import RewardStreams
from rewardstreams.runtime.errors import StreamsError
from rewardstreams.runtime.log import log_event

log = logging.getLogger("rewardstreams.tracking")


def _coerce_balance(x: Any) -> int:
    if isinstance(x, bool) or not isinstance(x, int):
        return 0
    return x if x > 0 else 0


class TrackingRewardStreams(RewardStreams):
    variant = "tracking"

    def balance_tracker_hook(
        self,
        caller: str,
        account: str,
        new_account_balance: Any,
        forfeit_recent_reward: bool = False,
    ) -> None:
        rewarded = caller.strip() if isinstance(caller, str) else ""
        acct_id = account.strip() if isinstance(account, str) else ""
        if not rewarded or not acct_id:
            log_event(log, "balance_hook_ignored", caller=caller, account=account)
            return
        self._apply_balance_change(
            acct_id,
            rewarded,
            _coerce_balance(new_account_balance),
            bool(forfeit_recent_reward),
        )


class BalanceForwarder:
    """Custodian-side helper that pushes balance changes into a tracker.

    A plain call is tried first. If it fails for any reason (e.g. a
    distribution whose catch-up cannot complete) the change is forwarded again with
    `forfeit_recent_reward=True`, which only touches stored state.
    """

    def __init__(self, tracker: TrackingRewardStreams, asset: str) -> None:
        self.tracker = tracker
        self.asset = asset

    def forward(self, account: str, new_balance: int) -> bool:
        """Returns False when the change had to be forwarded with forfeit."""
        try:
            self.tracker.balance_tracker_hook(self.asset, account, new_balance, False)
            return True
        except Exception as e:
            code = e.code if isinstance(e, StreamsError) else type(e).__name__
            log_event(log, "balance_hook_retry_forfeit", level=logging.WARNING, asset=self.asset, account=account, code=code)
        self.tracker.balance_tracker_hook(self.asset, account, new_balance, True)
        return False
