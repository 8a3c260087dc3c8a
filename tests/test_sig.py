from __future__ import annotations

from rewardstreams.crypto.sig import (
    canonical_tx_message,
    pubkey_from_privkey,
    sign_tx_envelope_dict,
    verify_tx_sig_against_any_key,
)
from rewardstreams.testing.sigtools import pubkey_for_label, sign_tx_dict

SEED = "11" * 32


def _verify(tx: dict, keys, instance_id: str = "rs-a"):
    return verify_tx_sig_against_any_key(
        keys=keys,
        instance_id=instance_id,
        tx_type=tx["tx_type"],
        signer=tx["signer"],
        nonce=tx["nonce"],
        payload=tx["payload"],
        sig=tx.get("sig", ""),
    )


def test_canonical_message_ignores_key_order() -> None:
    a = canonical_tx_message(instance_id="x", tx_type="STAKE", signer="s", nonce=1, payload={"a": 1, "b": 2})
    b = canonical_tx_message(instance_id="x", tx_type="STAKE", signer="s", nonce=1, payload={"b": 2, "a": 1})
    assert a == b


def test_sign_and_verify_round_trip() -> None:
    tx = {"tx_type": "REWARD_CLAIM", "signer": "alice", "nonce": 3, "payload": {"rewarded": "STK"}}
    signed = sign_tx_envelope_dict(tx=tx, instance_id="rs-a", privkey=SEED)

    ok, info = _verify(signed, [pubkey_from_privkey(SEED)])
    assert ok is True
    assert info["pubkey"] == pubkey_from_privkey(SEED)


def test_signature_is_bound_to_instance_and_payload() -> None:
    tx = {"tx_type": "REWARD_CLAIM", "signer": "alice", "nonce": 3, "payload": {"rewarded": "STK"}}
    signed = sign_tx_envelope_dict(tx=tx, instance_id="rs-a", privkey=SEED)
    key = [pubkey_from_privkey(SEED)]

    assert _verify(signed, key, instance_id="rs-b") == (False, {"reason": "invalid_signature"})

    tampered = dict(signed, payload={"rewarded": "OTHER"})
    assert _verify(tampered, key)[0] is False


def test_missing_keys_and_missing_signature() -> None:
    tx = {"tx_type": "STAKE", "signer": "bob", "nonce": 1, "payload": {}}
    assert _verify(tx, []) == (False, {"reason": "no_active_keys"})
    assert _verify(tx, [pubkey_for_label("bob")]) == (False, {"reason": "missing_signature"})


def test_sigtools_signs_with_label_key() -> None:
    tx = {"tx_type": "stake", "signer": "bob", "nonce": 1, "payload": {"amount": 5}}
    signed = sign_tx_dict(tx, instance_id="rs-a")

    # sigtools uppercases the type the same way envelope parsing does.
    signed["tx_type"] = "STAKE"
    assert _verify(signed, [pubkey_for_label("bob")])[0] is True
    assert _verify(signed, [pubkey_for_label("carol")])[0] is False
