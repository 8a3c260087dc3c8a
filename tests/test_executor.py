from __future__ import annotations

from pathlib import Path

import pytest

from rewardstreams.runtime.config import default_streams_config, with_overrides
from rewardstreams.runtime.errors import AssetError, StreamsError
from rewardstreams.runtime.executor import ExecutorError, StreamsExecutor
from rewardstreams.runtime.tx_types import TxEnvelope, compute_tx_id
from rewardstreams.testing.harness import DURATION, ManualClock
from rewardstreams.testing.sigtools import pubkey_for_label, sign_tx_dict


def _cfg(tmp_path: Path, **kw):
    base = dict(mode="dev", allow_unsigned_txs=True, db_path=str(tmp_path / "rs.db"), epoch_duration=DURATION)
    base.update(kw)
    return with_overrides(default_streams_config(), **base)


def _tx(tx_type: str, signer: str, nonce: int, payload: dict) -> dict:
    return {"tx_type": tx_type, "signer": signer, "nonce": nonce, "payload": payload}


def _funded(tmp_path: Path):
    clock = ManualClock(10 * DURATION)
    ex = StreamsExecutor(_cfg(tmp_path), clock=clock)
    ex.submit(_tx("ASSET_MINT", "alice", 1, {"token": "RWD", "amount": 1_000}))
    ex.submit(_tx("ASSET_APPROVE", "alice", 2, {"token": "RWD", "amount": 1_000}))
    return ex, clock


def test_submit_applies_and_returns_receipt(tmp_path: Path) -> None:
    ex, _clock = _funded(tmp_path)
    env = _tx("REWARD_REGISTER", "alice", 3, {"rewarded": "STK", "reward": "RWD", "start_epoch": 11, "amounts": [100]})

    receipt = ex.submit(env)

    assert receipt["ok"] is True
    assert receipt["seq"] == 3
    assert receipt["result"]["total"] == 100
    assert receipt["tx_id"] == compute_tx_id(ex.instance_id, TxEnvelope.from_json(env))
    assert ex.get_receipt(receipt["tx_id"]) == receipt
    assert ex.engine.total_reward_registered("STK", "RWD") == 100


def test_rejected_tx_leaves_state_and_nonce_untouched(tmp_path: Path) -> None:
    ex, _clock = _funded(tmp_path)
    before = ex.read_state()

    with pytest.raises(AssetError):
        ex.submit(
            _tx("REWARD_REGISTER", "alice", 3, {"rewarded": "STK", "reward": "RWD", "start_epoch": 11, "amounts": [5_000]})
        )

    assert ex.read_state() == before
    # nonce 3 is still free
    ex.submit(_tx("REWARD_REGISTER", "alice", 3, {"rewarded": "STK", "reward": "RWD", "start_epoch": 11, "amounts": [10]}))


def test_replayed_nonce_is_rejected(tmp_path: Path) -> None:
    ex, _clock = _funded(tmp_path)
    with pytest.raises(StreamsError) as ei:
        ex.submit(_tx("ASSET_APPROVE", "alice", 2, {"token": "RWD", "amount": 1}))
    assert ei.value.code == "bad_nonce"


def test_unknown_type_is_rejected(tmp_path: Path) -> None:
    ex, _clock = _funded(tmp_path)
    with pytest.raises(StreamsError) as ei:
        ex.submit(_tx("NOT_A_TX", "alice", 3, {}))
    assert ei.value.code == "tx_unimplemented"


def test_persist_failure_rolls_back_memory(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    ex, _clock = _funded(tmp_path)
    before = ex.read_state()

    def _boom(st, receipt):
        raise RuntimeError("disk full")

    monkeypatch.setattr(ex._store, "commit", _boom)
    with pytest.raises(RuntimeError):
        ex.submit(_tx("ASSET_MINT", "bob", 1, {"token": "STK", "amount": 5}))
    assert ex.read_state() == before


def test_state_survives_restart(tmp_path: Path) -> None:
    ex, clock = _funded(tmp_path)
    r = ex.submit(
        _tx("REWARD_REGISTER", "alice", 3, {"rewarded": "STK", "reward": "RWD", "start_epoch": 11, "amounts": [100]})
    )

    ex2 = StreamsExecutor(_cfg(tmp_path), clock=clock)
    assert ex2.read_state() == ex.read_state()
    assert ex2.engine.total_reward_registered("STK", "RWD") == 100
    assert ex2.get_receipt(r["tx_id"])["seq"] == 3
    assert len(ex2.receipts_for("alice")) == 3


def test_instance_mismatch_refuses_to_start(tmp_path: Path) -> None:
    _funded(tmp_path)
    with pytest.raises(ExecutorError):
        StreamsExecutor(_cfg(tmp_path, instance_id="someone-else"))


def test_signed_mode_requires_valid_signatures(tmp_path: Path) -> None:
    cfg = _cfg(tmp_path, allow_unsigned_txs=False)
    ex = StreamsExecutor(cfg, clock=ManualClock(10 * DURATION))
    iid = cfg.instance_id

    reg = _tx("KEY_REGISTER", "alice", 1, {"pubkey": pubkey_for_label("alice")})
    assert ex.submit(sign_tx_dict(reg, instance_id=iid))["ok"] is True

    mint = _tx("ASSET_MINT", "alice", 2, {"token": "RWD", "amount": 10})
    with pytest.raises(StreamsError) as ei:
        ex.submit(mint)
    assert ei.value.code == "bad_signature"

    with pytest.raises(StreamsError) as ei:
        ex.submit(sign_tx_dict(mint, instance_id=iid, label="mallory"))
    assert ei.value.code == "bad_signature"

    with pytest.raises(StreamsError) as ei:
        ex.submit(sign_tx_dict(mint, instance_id="other-instance"))
    assert ei.value.code == "bad_signature"

    assert ex.submit(sign_tx_dict(mint, instance_id=iid))["ok"] is True
    assert ex.world.assets.balance_of("RWD", "alice") == 10


def test_first_key_must_sign_its_own_registration(tmp_path: Path) -> None:
    cfg = _cfg(tmp_path, allow_unsigned_txs=False)
    ex = StreamsExecutor(cfg, clock=ManualClock(10 * DURATION))
    reg = _tx("KEY_REGISTER", "alice", 1, {"pubkey": pubkey_for_label("alice")})
    with pytest.raises(StreamsError) as ei:
        ex.submit(sign_tx_dict(reg, instance_id=cfg.instance_id, label="mallory"))
    assert ei.value.code == "bad_signature"


def test_prod_mode_disables_mint(tmp_path: Path) -> None:
    cfg = _cfg(tmp_path, mode="prod", allow_unsigned_txs=False)
    ex = StreamsExecutor(cfg, clock=ManualClock(10 * DURATION))
    ex.submit(sign_tx_dict(_tx("KEY_REGISTER", "alice", 1, {"pubkey": pubkey_for_label("alice")}), instance_id=cfg.instance_id))
    with pytest.raises(StreamsError) as ei:
        ex.submit(sign_tx_dict(_tx("ASSET_MINT", "alice", 2, {"token": "RWD", "amount": 10}), instance_id=cfg.instance_id))
    assert ei.value.code == "not_authorized"
