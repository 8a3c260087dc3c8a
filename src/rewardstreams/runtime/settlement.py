# src/rewardstreams/runtime/settlement.py
from __future__ import annotations

"""Settlement engine.

Two steps, always in this order:

  1. settle_distribution(): advance a distribution's accumulator from its
     `last_updated` to `now` by consuming the epoch schedule. Reward that
     accrues while `total_eligible == 0` is credited to the distribution's
     spillover balance instead.
  2. settle_account(): realise what an account earned since its snapshot.

Work is proportional to the number of epochs walked, which is capped at
SETTLEMENT_HORIZON_EPOCHS past the last settlement (no amount can be
scheduled further out), never to raw elapsed time.
"""

from typing import NamedTuple, Optional

from rewardstreams.ledger.constants import SCALER, SETTLEMENT_HORIZON_EPOCHS
from rewardstreams.ledger.epochs import EpochClock
from rewardstreams.ledger.types import Distribution, EarnStorage


class Settlement(NamedTuple):
    last_updated: int
    accumulator: int
    claimable: int
    spillover_delta: int


def time_elapsed_in_epoch(clock: EpochClock, epoch: int, last_updated: int, now: int) -> int:
    """Seconds of `epoch` that fall inside the interval (last_updated, now]."""
    start = clock.epoch_start(epoch)
    end = clock.epoch_end(epoch)

    if now <= start:
        return 0

    if now >= end:
        # epoch is over
        if start < last_updated < end:
            return end - last_updated
        if last_updated <= start:
            return clock.duration
        return 0

    # epoch in progress
    if last_updated > start:
        return now - last_updated
    return now - start


def pending_reward_time(dist: Distribution, clock: EpochClock, now: int) -> int:
    """Sum of amount * seconds elapsed, over the epochs since `last_updated`.

    Divide by the epoch duration to get reward-token units.
    """
    if not dist.funded or now <= dist.last_updated:
        return 0

    first = clock.epoch_of(dist.last_updated)
    last = min(clock.epoch_of(now), first + SETTLEMENT_HORIZON_EPOCHS)

    delta = 0
    for epoch in range(first, last + 1):
        amount = dist.amount_at(epoch)
        if amount:
            delta += amount * time_elapsed_in_epoch(clock, epoch, dist.last_updated, now)
    return delta


def calculate_rewards(
    dist: Distribution,
    earn: Optional[EarnStorage],
    weight: int,
    clock: EpochClock,
    now: int,
    *,
    forfeit_recent_reward: bool = False,
) -> Settlement:
    """Compute settled values without mutating anything.

    With `forfeit_recent_reward` the distribution is not advanced: the account
    is only reconciled against the accumulator already stored, so the reward
    of the unsettled interval is left to whoever is eligible when the
    distribution is next settled.
    """
    last_updated = int(dist.last_updated)
    accumulator = int(dist.accumulator)
    spillover_delta = 0

    if dist.funded and not forfeit_recent_reward and now > last_updated:
        delta = pending_reward_time(dist, clock, now)
        if dist.total_eligible > 0:
            accumulator += delta * SCALER // clock.duration // dist.total_eligible
        else:
            spillover_delta = delta // clock.duration
        last_updated = int(now)

    claimable = 0
    if earn is not None:
        claimable = int(earn.claimable) + (accumulator - int(earn.accumulator)) * int(weight) // SCALER

    return Settlement(last_updated, accumulator, claimable, spillover_delta)


def settle_distribution(dist: Distribution, clock: EpochClock, now: int) -> Distribution:
    s = calculate_rewards(dist, None, 0, clock, now)
    dist.accumulator = s.accumulator
    dist.spillover_claimable += s.spillover_delta
    dist.last_updated = s.last_updated
    return dist


def settle_account(dist: Distribution, earn: EarnStorage, weight: int) -> int:
    """Credit `earn` with reward accrued since its snapshot; returns the increment."""
    earned = (int(dist.accumulator) - int(earn.accumulator)) * int(weight) // SCALER
    earn.claimable += earned
    earn.accumulator = int(dist.accumulator)
    return earned


def settle(
    dist: Distribution,
    earn: Optional[EarnStorage],
    weight: int,
    clock: EpochClock,
    now: int,
    *,
    forfeit_recent_reward: bool = False,
) -> None:
    """Distribution first, then the account."""
    if not forfeit_recent_reward:
        settle_distribution(dist, clock, now)
    if earn is not None:
        settle_account(dist, earn, weight)
