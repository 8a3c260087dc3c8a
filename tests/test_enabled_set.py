from __future__ import annotations

from rewardstreams.ledger.constants import MAX_REWARDS_ENABLED
from rewardstreams.ledger.enabled_set import EnabledRewards


def test_insert_is_idempotent_and_ordered() -> None:
    s = EnabledRewards()
    assert s.insert("B") is True
    assert s.insert("A") is True
    assert s.insert("B") is False
    assert s.to_list() == ["B", "A"]
    assert "A" in s and "C" not in s
    assert len(s) == 2


def test_remove_keeps_order_of_rest() -> None:
    s = EnabledRewards(["A", "B", "C", "D"])
    assert s.remove("B") is True
    assert s.remove("B") is False
    assert s.to_list() == ["A", "C", "D"]


def test_is_full_at_capacity() -> None:
    s = EnabledRewards()
    for i in range(MAX_REWARDS_ENABLED):
        assert not s.is_full()
        s.insert(f"R{i}")
    assert s.is_full()


def test_from_list_drops_junk() -> None:
    s = EnabledRewards.from_list(["A", "", 3, None, "B", "A"])
    assert s.to_list() == ["A", "B"]
    assert EnabledRewards.from_list("nope").to_list() == []
    assert s == EnabledRewards(["A", "B"])
