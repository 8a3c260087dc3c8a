from __future__ import annotations

import pytest

from rewardstreams.ledger.state import RewardLedger
from rewardstreams.runtime.errors import StreamsError
from rewardstreams.runtime.state_invariants import check_ledger_invariants, ensure_invariants
from rewardstreams.testing.harness import CUSTODY, fund, staking_engine


def test_clean_engine_has_no_violations() -> None:
    eng, assets, _clock = staking_engine()
    fund(assets, "STK", "a", 10)
    fund(assets, "RWD", "f", 10)
    eng.stake("a", "STK", 10)
    eng.enable_reward("a", "STK", "RWD")
    eng.register_reward("f", "STK", "RWD", 11, [10])
    assert check_ledger_invariants(eng.ledger, assets=assets, custody_address=CUSTODY, staking=True) == []


def test_detects_eligible_mismatch_and_overclaim() -> None:
    led = RewardLedger()
    acct = led.account("a", "STK")
    acct.balance = 5
    acct.enabled_rewards.insert("RWD")
    d = led.distribution("STK", "RWD")
    d.total_eligible = 4
    d.total_registered = 1
    d.total_claimed = 2

    violations = check_ledger_invariants(led)
    assert any("total_eligible mismatch" in v for v in violations)
    assert any("claimed exceeds registered" in v for v in violations)

    with pytest.raises(StreamsError) as ei:
        ensure_invariants(led)
    assert ei.value.code == "invariant_violation"


def test_detects_custody_shortfall() -> None:
    eng, assets, _clock = staking_engine()
    fund(assets, "STK", "a", 10)
    eng.stake("a", "STK", 10)
    assets.transfer("STK", CUSTODY, "thief", 1)

    violations = check_ledger_invariants(eng.ledger, assets=assets, custody_address=CUSTODY, staking=True)
    assert violations == ["custody shortfall token=STK have=9 need=10"]
