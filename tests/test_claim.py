from __future__ import annotations

import pytest

from rewardstreams.runtime.errors import AssetError, StreamsError
from rewardstreams.runtime.identity import OperatorConnector
from rewardstreams.testing.harness import CUSTODY, fund, staking_engine

STK = "STK"
RWD = "RWD"


def _earning(identity=None):
    eng, assets, clock = staking_engine(identity=identity)
    fund(assets, STK, "alice", 100)
    fund(assets, RWD, "funder", 500)
    eng.stake("alice", STK, 100)
    eng.enable_reward("alice", STK, RWD)
    eng.register_reward("funder", STK, RWD, 11, [500])
    clock.to_epoch_start(12)
    return eng, assets, clock


def test_claim_pays_recipient_and_zeroes() -> None:
    eng, assets, _clock = _earning()

    assert eng.claim_reward("alice", STK, RWD, "alice-wallet") == 500
    assert assets.balance_of(RWD, "alice-wallet") == 500
    assert assets.balance_of(RWD, CUSTODY) == 0
    assert eng.earned_reward("alice", STK, RWD) == 0
    assert eng.total_reward_claimed(STK, RWD) == 500


def test_second_claim_pays_nothing() -> None:
    eng, assets, _clock = _earning()
    eng.claim_reward("alice", STK, RWD, "alice")
    assert eng.claim_reward("alice", STK, RWD, "alice") == 0
    assert assets.balance_of(RWD, "alice") == 500


def test_claim_requires_recipient() -> None:
    eng, _assets, _clock = _earning()
    with pytest.raises(StreamsError) as ei:
        eng.claim_reward("alice", STK, RWD, "  ")
    assert ei.value.code == "invalid_recipient"


def test_claim_with_forfeit_uses_stored_accumulator_only() -> None:
    eng, _assets, _clock = _earning()
    # Nothing has settled the distribution since registration.
    assert eng.earned_reward("alice", STK, RWD, forfeit_recent_reward=True) == 0
    assert eng.claim_reward("alice", STK, RWD, "alice", forfeit_recent_reward=True) == 0
    assert eng.claim_reward("alice", STK, RWD, "alice") == 500


def test_transfer_failure_propagates_and_keeps_claimable() -> None:
    eng, assets, _clock = _earning()
    assets.transfer(RWD, CUSTODY, "drain", assets.balance_of(RWD, CUSTODY))

    with pytest.raises(AssetError) as ei:
        eng.claim_reward("alice", STK, RWD, "alice")
    assert ei.value.code == "insufficient_balance"
    assert eng.earned_reward("alice", STK, RWD) == 500
    assert eng.total_reward_claimed(STK, RWD) == 0


def test_operator_claims_for_account() -> None:
    conn = OperatorConnector()
    conn.set_operator("alice", "keeper", True)
    eng, assets, _clock = _earning(identity=conn)

    assert eng.claim_reward("keeper", STK, RWD, "alice", on_behalf_of="alice") == 500
    assert assets.balance_of(RWD, "alice") == 500

    with pytest.raises(StreamsError) as ei:
        eng.claim_reward("mallory", STK, RWD, "mallory", on_behalf_of="alice")
    assert ei.value.code == "not_authorized"


def test_direct_caller_refuses_delegation() -> None:
    eng, _assets, _clock = _earning()
    with pytest.raises(StreamsError) as ei:
        eng.claim_reward("keeper", STK, RWD, "keeper", on_behalf_of="alice")
    assert ei.value.code == "not_authorized"


def test_calls_on_unregistered_pair_leave_ledger_untouched() -> None:
    eng, _assets, _clock = staking_engine()
    before = eng.ledger.to_json()

    assert eng.claim_reward("alice", STK, "NOPE", "alice") == 0
    assert eng.update_reward("alice", STK, "NOPE", "treasury") == 0
    assert eng.claim_spillover_reward("alice", STK, "NOPE", "treasury") == 0

    assert eng.ledger.to_json() == before
    assert eng.ledger.find_distribution(STK, "NOPE") is None
    assert eng.ledger.find_account("alice", STK) is None


def test_claim_of_reward_never_enabled_creates_no_earn_record() -> None:
    eng, _assets, _clock = _earning()
    assert eng.claim_reward("bob", STK, RWD, "bob") == 0
    assert eng.ledger.find_account("bob", STK) is None
