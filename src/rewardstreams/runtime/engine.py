# src/rewardstreams/runtime/engine.py
from __future__ import annotations

"""Reward streams engine shared by the staking and tracking variants.

Every mutating entry point follows the same discipline:

  1. settle the distribution (advance its accumulator to now)
  2. settle the caller's account against it
  3. apply the mutation

Variants differ only in where an account's weighted balance comes from; they
both funnel balance changes through `_apply_balance_change()`.

Failure model: input validation and custody checks run before any ledger
write. Collaborator failures (AssetError) propagate. Full rollback of a failed
call is the host's job (see runtime.domain_apply.apply_tx_atomic).
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

from rewardstreams.ledger.constants import (
    ACCUMULATOR_MAX,
    MAX_DISTRIBUTION_LENGTH,
    MAX_EPOCH_DURATION,
    MAX_EPOCHS_AHEAD,
    MIN_EPOCH_DURATION,
    SCALER,
    UINT128_MAX,
)
from rewardstreams.ledger.epochs import EpochClock
from rewardstreams.ledger.state import RewardLedger
from rewardstreams.ledger.types import AccountStorage, Distribution, EarnStorage
from rewardstreams.runtime.assets import FungibleAssets
from rewardstreams.runtime.errors import StreamsError
from rewardstreams.runtime.identity import CallerResolver, DirectCaller
from rewardstreams.runtime.log import log_event
from rewardstreams.runtime.settlement import calculate_rewards, settle, settle_distribution

Json = Dict[str, Any]

DEFAULT_CUSTODY_ADDRESS = "REWARD_STREAMS"

log = logging.getLogger("rewardstreams.engine")


def _wall_clock() -> int:
    return int(time.time())


def _as_str(x: Any) -> str:
    return x.strip() if isinstance(x, str) else ""


def _require_id(value: Any, name: str) -> str:
    s = _as_str(value)
    if not s:
        raise StreamsError("invalid_input", f"missing_{name}", {name: value})
    return s


def _require_recipient(recipient: Any) -> str:
    s = _as_str(recipient)
    if not s:
        raise StreamsError("invalid_recipient", "empty_recipient", {"recipient": recipient})
    return s


def _require_int(value: Any, name: str, code: str = "invalid_amount") -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise StreamsError(code, f"{name}_not_int", {name: value})
    return value


class RewardStreams:
    """Epoch-bucketed reward streams over an abstract weighted balance."""

    variant = "base"

    def __init__(
        self,
        *,
        assets: FungibleAssets,
        epoch_duration: int,
        epoch_origin: int = 0,
        identity: Optional[CallerResolver] = None,
        custody_address: str = DEFAULT_CUSTODY_ADDRESS,
        clock: Optional[Callable[[], int]] = None,
        ledger: Optional[RewardLedger] = None,
    ) -> None:
        duration = int(epoch_duration)
        if duration < MIN_EPOCH_DURATION or duration > MAX_EPOCH_DURATION:
            raise StreamsError(
                "invalid_input",
                "epoch_duration_out_of_range",
                {"epoch_duration": duration, "min": MIN_EPOCH_DURATION, "max": MAX_EPOCH_DURATION},
            )
        self.epochs = EpochClock(duration=duration, origin=int(epoch_origin))
        self.assets = assets
        self.identity: CallerResolver = identity or DirectCaller()
        self.address = _require_id(custody_address, "custody_address")
        self.clock: Callable[[], int] = clock or _wall_clock
        self.ledger = ledger or RewardLedger()

    @property
    def epoch_duration(self) -> int:
        return self.epochs.duration

    def now(self) -> int:
        return int(self.clock())

    def _resolve(self, caller: str, on_behalf_of: Optional[str]) -> str:
        return self.identity.resolve(caller, on_behalf_of)

    # ----------------------------
    # Registration
    # ----------------------------

    def register_reward(
        self,
        caller: str,
        rewarded: str,
        reward: str,
        start_epoch: int,
        amounts: Sequence[int],
        *,
        on_behalf_of: Optional[str] = None,
    ) -> Json:
        """Fund and schedule `amounts[i]` for epoch `start_epoch + i`.

        Permissionless and additive. `start_epoch == 0` means the current epoch.
        """
        account = self._resolve(caller, on_behalf_of)
        rewarded = _require_id(rewarded, "rewarded")
        reward = _require_id(reward, "reward")
        if rewarded == reward:
            raise StreamsError("invalid_input", "reward_equals_rewarded", {"rewarded": rewarded, "reward": reward})

        now = self.now()
        current = self.epochs.current(now)
        start = _require_int(start_epoch, "start_epoch", "invalid_epoch")
        if start == 0:
            start = current
        if start < current or start > current + MAX_EPOCHS_AHEAD:
            raise StreamsError(
                "invalid_epoch",
                "start_epoch_out_of_window",
                {"start_epoch": start, "current_epoch": current, "max_ahead": MAX_EPOCHS_AHEAD},
            )

        if not isinstance(amounts, (list, tuple)) or not amounts or len(amounts) > MAX_DISTRIBUTION_LENGTH:
            raise StreamsError(
                "invalid_distribution",
                "bad_length",
                {"length": len(amounts) if isinstance(amounts, (list, tuple)) else None, "max": MAX_DISTRIBUTION_LENGTH},
            )
        for i, a in enumerate(amounts):
            _require_int(a, "amount")
            if a < 0 or a > UINT128_MAX:
                raise StreamsError("invalid_amount", "amount_out_of_range", {"index": i, "amount": a})
        total = sum(amounts)
        if total == 0:
            raise StreamsError("invalid_amount", "zero_total", {})

        existing = self.ledger.find_distribution(rewarded, reward)
        registered_after = (existing.total_registered if existing else 0) + total
        if registered_after > UINT128_MAX or registered_after * SCALER > ACCUMULATOR_MAX:
            raise StreamsError(
                "accumulator_overflow", "total_registered_too_large", {"total_registered": registered_after}
            )

        self._pull(reward, account, total)

        dist = self.ledger.distribution(rewarded, reward)
        if not dist.funded:
            dist.last_updated = now
        else:
            settle_distribution(dist, self.epochs, now)

        for i, a in enumerate(amounts):
            if a:
                dist.amounts[start + i] = dist.amount_at(start + i) + a

        # The part of the current epoch that elapsed before funding can no
        # longer be streamed to holders; park it with spillover.
        if start == current and amounts[0]:
            elapsed = max(now - self.epochs.epoch_start(current), 0)
            dist.spillover_claimable += amounts[0] * elapsed // self.epochs.duration

        dist.total_registered += total

        log_event(
            log,
            "reward_registered",
            account=account,
            rewarded=rewarded,
            reward=reward,
            start_epoch=start,
            epochs=len(amounts),
            total=total,
        )
        return {"rewarded": rewarded, "reward": reward, "start_epoch": start, "total": total}

    # ----------------------------
    # Enable / disable
    # ----------------------------

    def enable_reward(self, caller: str, rewarded: str, reward: str, *, on_behalf_of: Optional[str] = None) -> bool:
        account = self._resolve(caller, on_behalf_of)
        rewarded = _require_id(rewarded, "rewarded")
        reward = _require_id(reward, "reward")
        if rewarded == reward:
            raise StreamsError("invalid_input", "reward_equals_rewarded", {"rewarded": rewarded, "reward": reward})

        acct = self.ledger.find_account(account, rewarded) or AccountStorage()
        if reward in acct.enabled_rewards:
            return False
        if acct.enabled_rewards.is_full():
            raise StreamsError(
                "too_many_rewards_enabled",
                "enabled_set_full",
                {"account": account, "rewarded": rewarded, "max": acct.enabled_rewards.max_size},
            )

        acct = self.ledger.account(account, rewarded)
        dist = self.ledger.distribution(rewarded, reward)
        # Not yet enabled: accrues nothing for the interval being settled.
        settle(dist, acct.earn(reward), 0, self.epochs, self.now())

        acct.enabled_rewards.insert(reward)
        dist.total_eligible += acct.balance

        log_event(log, "reward_enabled", account=account, rewarded=rewarded, reward=reward, balance=acct.balance)
        return True

    def disable_reward(
        self,
        caller: str,
        rewarded: str,
        reward: str,
        forfeit_recent_reward: bool = False,
        *,
        on_behalf_of: Optional[str] = None,
    ) -> bool:
        """Stop accruing `reward`. With `forfeit_recent_reward` this is O(1)."""
        account = self._resolve(caller, on_behalf_of)
        acct = self.ledger.find_account(account, _as_str(rewarded))
        if acct is None or _as_str(reward) not in acct.enabled_rewards:
            return False
        rewarded = _as_str(rewarded)
        reward = _as_str(reward)

        dist = self.ledger.distribution(rewarded, reward)
        settle(
            dist,
            acct.earn(reward),
            acct.balance,
            self.epochs,
            self.now(),
            forfeit_recent_reward=bool(forfeit_recent_reward),
        )

        acct.enabled_rewards.remove(reward)
        dist.total_eligible -= acct.balance

        log_event(
            log,
            "reward_disabled",
            account=account,
            rewarded=rewarded,
            reward=reward,
            balance=acct.balance,
            forfeit=bool(forfeit_recent_reward),
        )
        return True

    # ----------------------------
    # Update / claim
    # ----------------------------

    def update_reward(
        self,
        caller: str,
        rewarded: str,
        reward: str,
        recipient: Optional[str] = None,
        *,
        on_behalf_of: Optional[str] = None,
    ) -> int:
        """Settle the distribution and the caller; optionally harvest spillover to `recipient`."""
        account = self._resolve(caller, on_behalf_of)
        rewarded = _require_id(rewarded, "rewarded")
        reward = _require_id(reward, "reward")

        dist = self.ledger.find_distribution(rewarded, reward)
        if dist is None:
            return 0
        acct = self.ledger.find_account(account, rewarded)
        earn = acct.earned.get(reward) if acct is not None else None
        weight = acct.weight_for(reward) if (acct is not None and earn is not None) else 0
        settle(dist, earn, weight, self.epochs, self.now())

        if _as_str(recipient):
            return self._pay_spillover(rewarded, reward, dist, _as_str(recipient))
        return 0

    def claim_reward(
        self,
        caller: str,
        rewarded: str,
        reward: str,
        recipient: str,
        forfeit_recent_reward: bool = False,
        *,
        on_behalf_of: Optional[str] = None,
    ) -> int:
        account = self._resolve(caller, on_behalf_of)
        rewarded = _require_id(rewarded, "rewarded")
        reward = _require_id(reward, "reward")
        to = _require_recipient(recipient)

        dist = self.ledger.find_distribution(rewarded, reward)
        acct = self.ledger.find_account(account, rewarded)
        earn = acct.earned.get(reward) if acct is not None else None
        if dist is None or earn is None:
            return 0
        settle(
            dist,
            earn,
            acct.weight_for(reward),
            self.epochs,
            self.now(),
            forfeit_recent_reward=bool(forfeit_recent_reward),
        )

        amount = int(earn.claimable)
        if amount:
            self.assets.transfer(reward, self.address, to, amount)
            earn.claimable = 0
            dist.total_claimed += amount

        log_event(
            log,
            "reward_claimed",
            account=account,
            rewarded=rewarded,
            reward=reward,
            recipient=to,
            amount=amount,
        )
        return amount

    def claim_spillover_reward(self, caller: str, rewarded: str, reward: str, recipient: str) -> int:
        """Pay out reward that accrued with no eligible weight. Permissionless."""
        _require_id(caller, "caller")
        rewarded = _require_id(rewarded, "rewarded")
        reward = _require_id(reward, "reward")
        to = _require_recipient(recipient)

        dist = self.ledger.find_distribution(rewarded, reward)
        if dist is None:
            return 0
        settle_distribution(dist, self.epochs, self.now())
        return self._pay_spillover(rewarded, reward, dist, to)

    def _pay_spillover(self, rewarded: str, reward: str, dist: Distribution, recipient: str) -> int:
        amount = int(dist.spillover_claimable)
        if amount:
            self.assets.transfer(reward, self.address, recipient, amount)
            dist.spillover_claimable = 0
            dist.total_claimed += amount
        log_event(log, "spillover_claimed", rewarded=rewarded, reward=reward, recipient=recipient, amount=amount)
        return amount

    # ----------------------------
    # Balance changes (used by variants)
    # ----------------------------

    def _apply_balance_change(
        self,
        account: str,
        rewarded: str,
        new_balance: int,
        forfeit_recent_reward: bool = False,
    ) -> AccountStorage:
        acct = self.ledger.account(account, rewarded)
        old_balance = int(acct.balance)
        now = self.now()

        for reward in acct.enabled_rewards:
            dist = self.ledger.distribution(rewarded, reward)
            settle(
                dist,
                acct.earn(reward),
                old_balance,
                self.epochs,
                now,
                forfeit_recent_reward=forfeit_recent_reward,
            )
            dist.total_eligible = dist.total_eligible + new_balance - old_balance

        acct.balance = int(new_balance)

        log_event(
            log,
            "balance_changed",
            account=account,
            rewarded=rewarded,
            old_balance=old_balance,
            new_balance=int(new_balance),
            forfeit=bool(forfeit_recent_reward),
        )
        return acct

    def _pull(self, token: str, owner: str, amount: int) -> None:
        """transfer_from into custody; the received amount must match exactly."""
        before = int(self.assets.balance_of(token, self.address))
        self.assets.transfer_from(token, self.address, owner, self.address, amount)
        received = int(self.assets.balance_of(token, self.address)) - before
        if received != amount:
            raise StreamsError(
                "funding_mismatch",
                "received_amount_differs",
                {"token": token, "expected": amount, "received": received},
            )

    # ----------------------------
    # Views (never create records)
    # ----------------------------

    def current_epoch(self) -> int:
        return self.epochs.current(self.now())

    def get_epoch(self, timestamp: Any) -> int:
        return self.epochs.epoch_of(timestamp)

    def get_epoch_start_timestamp(self, epoch: Any) -> int:
        return self.epochs.epoch_start(epoch)

    def get_epoch_end_timestamp(self, epoch: Any) -> int:
        return self.epochs.epoch_end(epoch)

    def reward_amount(self, rewarded: str, reward: str, epoch: Optional[int] = None) -> int:
        dist = self.ledger.find_distribution(rewarded, reward)
        if dist is None:
            return 0
        e = self.current_epoch() if epoch is None else int(epoch)
        return dist.amount_at(e)

    def total_rewarded_eligible(self, rewarded: str, reward: str) -> int:
        dist = self.ledger.find_distribution(rewarded, reward)
        return int(dist.total_eligible) if dist else 0

    def total_reward_registered(self, rewarded: str, reward: str) -> int:
        dist = self.ledger.find_distribution(rewarded, reward)
        return int(dist.total_registered) if dist else 0

    def total_reward_claimed(self, rewarded: str, reward: str) -> int:
        dist = self.ledger.find_distribution(rewarded, reward)
        return int(dist.total_claimed) if dist else 0

    def enabled_rewards(self, account: str, rewarded: str) -> List[str]:
        acct = self.ledger.find_account(account, rewarded)
        return acct.enabled_rewards.to_list() if acct else []

    def balance_of(self, account: str, rewarded: str) -> int:
        acct = self.ledger.find_account(account, rewarded)
        return int(acct.balance) if acct else 0

    def earned_reward(self, account: str, rewarded: str, reward: str, forfeit_recent_reward: bool = False) -> int:
        """Claimable amount as of now, or as of the last settlement when forfeiting."""
        dist = self.ledger.find_distribution(rewarded, reward)
        acct = self.ledger.find_account(account, rewarded)
        if acct is None:
            return 0
        earn = acct.earned.get(reward, EarnStorage())
        if dist is None:
            return int(earn.claimable)
        s = calculate_rewards(
            dist,
            earn,
            acct.weight_for(reward),
            self.epochs,
            self.now(),
            forfeit_recent_reward=bool(forfeit_recent_reward),
        )
        return int(s.claimable)

    def spillover_reward(self, rewarded: str, reward: str) -> int:
        dist = self.ledger.find_distribution(rewarded, reward)
        if dist is None:
            return 0
        s = calculate_rewards(dist, None, 0, self.epochs, self.now())
        return int(dist.spillover_claimable) + int(s.spillover_delta)

    def distribution_info(self, rewarded: str, reward: str) -> Json:
        dist = self.ledger.find_distribution(rewarded, reward)
        out = (dist or Distribution()).to_json()
        out.update(
            {
                "rewarded": rewarded,
                "reward": reward,
                "current_epoch": self.current_epoch(),
                "current_epoch_amount": self.reward_amount(rewarded, reward),
                "spillover_reward": self.spillover_reward(rewarded, reward),
            }
        )
        return out

    # ----------------------------
    # Host hooks
    # ----------------------------

    def stake(self, caller: str, rewarded: str, amount: Optional[int], *, on_behalf_of: Optional[str] = None) -> int:
        raise StreamsError("unsupported_operation", "stake_not_supported", {"variant": self.variant})

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
        raise StreamsError("unsupported_operation", "unstake_not_supported", {"variant": self.variant})

    def balance_tracker_hook(
        self, caller: str, account: str, new_account_balance: Any, forfeit_recent_reward: bool = False
    ) -> None:
        raise StreamsError("unsupported_operation", "balance_tracker_not_supported", {"variant": self.variant})
