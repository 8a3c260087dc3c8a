from __future__ import annotations

import pytest

from rewardstreams.ledger.constants import MAX_DISTRIBUTION_LENGTH, MAX_EPOCHS_AHEAD, UINT128_MAX
from rewardstreams.runtime.errors import AssetError, StreamsError
from rewardstreams.testing.harness import CUSTODY, DURATION, fund, staking_engine

STK = "STK"
RWD = "RWD"


def test_register_schedules_amounts_and_pulls_funds() -> None:
    eng, assets, _clock = staking_engine()
    fund(assets, RWD, "alice", 300)

    out = eng.register_reward("alice", STK, RWD, 11, [100, 200])

    assert out == {"rewarded": STK, "reward": RWD, "start_epoch": 11, "total": 300}
    assert eng.reward_amount(STK, RWD, 11) == 100
    assert eng.reward_amount(STK, RWD, 12) == 200
    assert eng.reward_amount(STK, RWD, 13) == 0
    assert eng.total_reward_registered(STK, RWD) == 300
    assert assets.balance_of(RWD, CUSTODY) == 300
    assert assets.balance_of(RWD, "alice") == 0


def test_register_is_additive() -> None:
    eng, assets, _clock = staking_engine()
    fund(assets, RWD, "alice", 100)
    fund(assets, RWD, "bob", 50)

    eng.register_reward("alice", STK, RWD, 11, [100])
    eng.register_reward("bob", STK, RWD, 11, [50])

    assert eng.reward_amount(STK, RWD, 11) == 150
    assert eng.total_reward_registered(STK, RWD) == 150


def test_start_epoch_zero_means_current_and_elapsed_part_spills() -> None:
    eng, assets, clock = staking_engine(offset=DURATION // 4)
    fund(assets, RWD, "alice", 100)

    out = eng.register_reward("alice", STK, RWD, 0, [100])

    assert out["start_epoch"] == eng.current_epoch() == 10
    assert eng.spillover_reward(STK, RWD) == 25

    clock.to_epoch_start(11)
    assert eng.spillover_reward(STK, RWD) == 100


@pytest.mark.parametrize("delta", [-1, MAX_EPOCHS_AHEAD + 1])
def test_start_epoch_outside_window_is_rejected(delta: int) -> None:
    eng, assets, _clock = staking_engine()
    fund(assets, RWD, "alice", 100)
    with pytest.raises(StreamsError) as ei:
        eng.register_reward("alice", STK, RWD, 10 + delta, [100])
    assert ei.value.code == "invalid_epoch"


def test_start_epoch_at_far_edge_is_accepted() -> None:
    eng, assets, _clock = staking_engine()
    fund(assets, RWD, "alice", 100)
    eng.register_reward("alice", STK, RWD, 10 + MAX_EPOCHS_AHEAD, [100])
    assert eng.reward_amount(STK, RWD, 10 + MAX_EPOCHS_AHEAD) == 100


@pytest.mark.parametrize(
    "amounts, code",
    [
        ([], "invalid_distribution"),
        ([1] * (MAX_DISTRIBUTION_LENGTH + 1), "invalid_distribution"),
        ([0, 0], "invalid_amount"),
        ([-1, 5], "invalid_amount"),
        ([True], "invalid_amount"),
        ([UINT128_MAX + 1], "invalid_amount"),
    ],
)
def test_bad_amounts_are_rejected(amounts, code: str) -> None:
    eng, assets, _clock = staking_engine()
    fund(assets, RWD, "alice", 1_000)
    with pytest.raises(StreamsError) as ei:
        eng.register_reward("alice", STK, RWD, 11, amounts)
    assert ei.value.code == code
    assert eng.total_reward_registered(STK, RWD) == 0
    assert assets.balance_of(RWD, CUSTODY) == 0


def test_reward_equal_to_rewarded_is_rejected() -> None:
    eng, assets, _clock = staking_engine()
    fund(assets, STK, "alice", 100)
    with pytest.raises(StreamsError) as ei:
        eng.register_reward("alice", STK, STK, 11, [100])
    assert ei.value.code == "invalid_input"


def test_accumulator_overflow_is_rejected_before_funding() -> None:
    eng, _assets, _clock = staking_engine()
    with pytest.raises(StreamsError) as ei:
        eng.register_reward("alice", STK, RWD, 11, [UINT128_MAX])
    assert ei.value.code == "accumulator_overflow"


def test_fee_on_transfer_reward_is_a_funding_mismatch() -> None:
    eng, assets, _clock = staking_engine()
    fund(assets, RWD, "alice", 1_000)
    assets.set_transfer_fee(RWD, 100)
    with pytest.raises(StreamsError) as ei:
        eng.register_reward("alice", STK, RWD, 11, [1_000])
    assert ei.value.code == "funding_mismatch"
    assert eng.total_reward_registered(STK, RWD) == 0


def test_missing_allowance_propagates_asset_error() -> None:
    eng, assets, _clock = staking_engine()
    assets.mint(RWD, "alice", 100)
    with pytest.raises(AssetError) as ei:
        eng.register_reward("alice", STK, RWD, 11, [100])
    assert ei.value.code == "insufficient_allowance"


def test_registration_at_time_zero_streams_to_holders() -> None:
    eng, assets, clock = staking_engine(start_epoch=0)
    fund(assets, STK, "bob", 10)
    eng.stake("bob", STK, 10)
    eng.enable_reward("bob", STK, RWD)
    fund(assets, RWD, "alice", 200)

    eng.register_reward("alice", STK, RWD, 0, [100])
    assert eng.ledger.find_distribution(STK, RWD).last_updated == 0

    # a later registration must not skip what epoch 0 already streamed
    clock.to_epoch_start(1)
    eng.register_reward("alice", STK, RWD, 0, [100])

    clock.to_epoch_start(2)
    assert eng.earned_reward("bob", STK, RWD) == 200
    assert eng.spillover_reward(STK, RWD) == 0
