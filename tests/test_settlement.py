from __future__ import annotations

from rewardstreams.ledger.constants import MIN_EPOCH_DURATION, SCALER, SETTLEMENT_HORIZON_EPOCHS
from rewardstreams.ledger.epochs import EpochClock
from rewardstreams.ledger.types import Distribution, EarnStorage
from rewardstreams.runtime.settlement import (
    calculate_rewards,
    pending_reward_time,
    settle,
    settle_account,
    settle_distribution,
    time_elapsed_in_epoch,
)

D = MIN_EPOCH_DURATION
CLOCK = EpochClock(duration=D)


def test_time_elapsed_in_epoch_cases() -> None:
    start, end = 2 * D, 3 * D
    # not started yet
    assert time_elapsed_in_epoch(CLOCK, 2, start - 10, start) == 0
    # finished, last update inside the epoch
    assert time_elapsed_in_epoch(CLOCK, 2, start + 100, end + 5) == D - 100
    # finished, last update before it
    assert time_elapsed_in_epoch(CLOCK, 2, start - 1, end + 5) == D
    # finished, last update after it
    assert time_elapsed_in_epoch(CLOCK, 2, end, end + 5) == 0
    # in progress
    assert time_elapsed_in_epoch(CLOCK, 2, start + 10, start + 50) == 40
    assert time_elapsed_in_epoch(CLOCK, 2, start - 10, start + 50) == 50


def test_calculate_rewards_is_pure() -> None:
    dist = Distribution(last_updated=2 * D, total_registered=100, amounts={2: 100})
    s = calculate_rewards(dist, None, 0, CLOCK, 3 * D)
    assert s.spillover_delta == 100
    assert s.last_updated == 3 * D
    assert dist.last_updated == 2 * D
    assert dist.spillover_claimable == 0


def test_settle_distribution_grows_accumulator_then_account_realises() -> None:
    dist = Distribution(last_updated=2 * D, total_eligible=50, total_registered=100, amounts={2: 100})
    settle_distribution(dist, CLOCK, 2 * D + D // 2)
    assert dist.accumulator == SCALER
    assert dist.last_updated == 2 * D + D // 2

    earn = EarnStorage()
    assert settle_account(dist, earn, 10) == 10
    assert earn.claimable == 10
    assert earn.accumulator == dist.accumulator
    # idempotent
    assert settle_account(dist, earn, 10) == 0


def test_never_registered_distribution_does_not_move() -> None:
    dist = Distribution(total_eligible=5, amounts={1: 100})
    settle_distribution(dist, CLOCK, 10 * D)
    assert dist.last_updated == 0
    assert dist.accumulator == 0
    assert dist.spillover_claimable == 0


def test_distribution_funded_at_time_zero_settles() -> None:
    dist = Distribution(last_updated=0, total_eligible=10, total_registered=100, amounts={0: 100})
    settle_distribution(dist, CLOCK, 2 * D)
    assert dist.last_updated == 2 * D
    assert dist.accumulator == 10 * SCALER


def test_walk_is_clipped_at_horizon() -> None:
    dist = Distribution(
        last_updated=2 * D,
        total_registered=1_007,
        amounts={2 + SETTLEMENT_HORIZON_EPOCHS: 7, 3 + SETTLEMENT_HORIZON_EPOCHS: 1_000},
    )
    assert pending_reward_time(dist, CLOCK, 200 * D) == 7 * D
    settle_distribution(dist, CLOCK, 200 * D)
    assert dist.spillover_claimable == 7


def test_forfeit_skips_distribution_catch_up() -> None:
    dist = Distribution(last_updated=2 * D, accumulator=3 * SCALER, total_eligible=10, amounts={2: 100})
    earn = EarnStorage(accumulator=SCALER)
    settle(dist, earn, 4, CLOCK, 3 * D, forfeit_recent_reward=True)
    assert dist.last_updated == 2 * D
    assert dist.accumulator == 3 * SCALER
    assert earn.claimable == 8
    assert earn.accumulator == 3 * SCALER
