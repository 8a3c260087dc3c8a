# src/rewardstreams/crypto/sig.py
from __future__ import annotations

import base64
import json
from typing import Any, Dict, Iterable, Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

Json = Dict[str, Any]


def _decode_bytes(s: str) -> bytes:
    s = s.strip()
    if not s:
        raise ValueError("empty string")
    try:
        return bytes.fromhex(s)
    except ValueError:
        pass
    try:
        padding = "=" * (-len(s) % 4)
        s2 = (s + padding).replace("-", "+").replace("_", "/")
        return base64.b64decode(s2, validate=True)
    except Exception as e:
        raise ValueError("not hex or base64") from e


def canonical_tx_message(*, instance_id: str, tx_type: str, signer: str, nonce: int, payload: Json) -> bytes:
    """Bytes covered by an envelope signature.

    The instance id is included so a tx signed for one deployment cannot be
    replayed against another.
    """
    obj: Json = {
        "instance_id": str(instance_id),
        "tx_type": str(tx_type),
        "signer": str(signer),
        "nonce": int(nonce),
        "payload": payload if isinstance(payload, dict) else {},
    }
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def verify_ed25519_signature(*, message: bytes, sig: str, pubkey: str) -> bool:
    try:
        sig_b = _decode_bytes(sig)
        key = Ed25519PublicKey.from_public_bytes(_decode_bytes(pubkey))
        key.verify(sig_b, message)
        return True
    except (InvalidSignature, ValueError):
        return False


def sign_ed25519(*, message: bytes, privkey: str, encoding: str = "hex") -> str:
    """Sign a message with an Ed25519 private key.

    privkey: hex or base64/base64url string representing a 32-byte seed.
    encoding: "hex" (default) or "b64".
    """
    pk_b = _decode_bytes(privkey)
    if len(pk_b) == 64:
        pk_b = pk_b[:32]
    if len(pk_b) != 32:
        raise ValueError("ed25519 privkey must be 32-byte seed (or 64-byte expanded key)")

    sig_b = Ed25519PrivateKey.from_private_bytes(pk_b).sign(message)
    if encoding == "hex":
        return sig_b.hex()
    if encoding in {"b64", "base64"}:
        return base64.b64encode(sig_b).decode("ascii")
    raise ValueError("unsupported encoding")


def sign_tx_envelope_dict(*, tx: Json, instance_id: str, privkey: str, encoding: str = "hex") -> Json:
    """Return a copy of tx with its 'sig' field populated."""
    payload = tx.get("payload") if isinstance(tx.get("payload"), dict) else {}
    msg = canonical_tx_message(
        instance_id=instance_id,
        tx_type=str(tx.get("tx_type") or ""),
        signer=str(tx.get("signer") or ""),
        nonce=int(tx.get("nonce") or 0),
        payload=payload,
    )
    out = dict(tx)
    out["payload"] = payload
    out["sig"] = sign_ed25519(message=msg, privkey=privkey, encoding=encoding)
    return out


def verify_tx_sig_against_any_key(
    *,
    keys: Iterable[str],
    instance_id: str,
    tx_type: str,
    signer: str,
    nonce: int,
    payload: Json,
    sig: str,
) -> Tuple[bool, Dict[str, Any]]:
    key_list = [k for k in keys if isinstance(k, str) and k.strip()]
    if not key_list:
        return False, {"reason": "no_active_keys"}
    if not str(sig or "").strip():
        return False, {"reason": "missing_signature"}

    msg = canonical_tx_message(instance_id=instance_id, tx_type=tx_type, signer=signer, nonce=nonce, payload=payload)
    for pk in key_list:
        if verify_ed25519_signature(message=msg, sig=sig, pubkey=pk):
            return True, {"pubkey": pk}
    return False, {"reason": "invalid_signature"}


def pubkey_from_privkey(privkey: str) -> str:
    seed = _decode_bytes(privkey)[:32]
    return Ed25519PrivateKey.from_private_bytes(seed).public_key().public_bytes(Encoding.Raw, PublicFormat.Raw).hex()


__all__ = [
    "canonical_tx_message",
    "verify_ed25519_signature",
    "sign_ed25519",
    "sign_tx_envelope_dict",
    "verify_tx_sig_against_any_key",
    "pubkey_from_privkey",
]
