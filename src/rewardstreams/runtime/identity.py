# src/rewardstreams/runtime/identity.py
from __future__ import annotations

"""Caller identity collaborators.

The engine books everything against the account returned by
`CallerResolver.resolve(caller, on_behalf_of)`. Delegation policy lives here,
never in the engine:

  - DirectCaller: the caller is the account; delegation is refused.
  - OperatorConnector: accounts authorise operators that may act for them.
    It also keeps the Ed25519 keys and last nonces the executor uses to
    authenticate envelope signers.
"""

from typing import Any, Dict, List, Optional, Protocol, Set

from rewardstreams.runtime.errors import StreamsError

Json = Dict[str, Any]


def _as_dict(x: Any) -> Json:
    return x if isinstance(x, dict) else {}


def _as_str(x: Any) -> str:
    return x.strip() if isinstance(x, str) else ""


class CallerResolver(Protocol):
    def resolve(self, caller: str, on_behalf_of: Optional[str] = None) -> str: ...


class DirectCaller:
    def resolve(self, caller: str, on_behalf_of: Optional[str] = None) -> str:
        c = _as_str(caller)
        if not c:
            raise StreamsError("invalid_input", "missing_caller", {})
        target = _as_str(on_behalf_of)
        if target and target != c:
            raise StreamsError("not_authorized", "delegation_unsupported", {"caller": c, "on_behalf_of": target})
        return c


class OperatorConnector:
    def __init__(self) -> None:
        self._operators: Dict[str, Set[str]] = {}
        self._keys: Dict[str, List[str]] = {}
        self._nonces: Dict[str, int] = {}

    # ----------------------------
    # Delegation
    # ----------------------------

    def set_operator(self, account: str, operator: str, authorized: bool) -> None:
        a = _as_str(account)
        o = _as_str(operator)
        if not a or not o:
            raise StreamsError("invalid_input", "missing_account_or_operator", {"account": a, "operator": o})
        if a == o:
            raise StreamsError("invalid_input", "self_operator", {"account": a})
        ops = self._operators.setdefault(a, set())
        if authorized:
            ops.add(o)
        else:
            ops.discard(o)
            if not ops:
                self._operators.pop(a, None)

    def is_operator(self, account: str, operator: str) -> bool:
        return operator in self._operators.get(account, set())

    def resolve(self, caller: str, on_behalf_of: Optional[str] = None) -> str:
        c = _as_str(caller)
        if not c:
            raise StreamsError("invalid_input", "missing_caller", {})
        target = _as_str(on_behalf_of)
        if not target or target == c:
            return c
        if not self.is_operator(target, c):
            raise StreamsError("not_authorized", "not_an_operator", {"caller": c, "on_behalf_of": target})
        return target

    # ----------------------------
    # Signer keys + nonces
    # ----------------------------

    def register_key(self, account: str, pubkey: str) -> bool:
        a = _as_str(account)
        pk = _as_str(pubkey)
        if not a or not pk:
            raise StreamsError("invalid_input", "missing_account_or_pubkey", {"account": a})
        keys = self._keys.setdefault(a, [])
        if pk in keys:
            return False
        keys.append(pk)
        return True

    def keys_of(self, account: str) -> List[str]:
        return list(self._keys.get(account, []))

    def last_nonce(self, account: str) -> int:
        return int(self._nonces.get(account, 0))

    def consume_nonce(self, account: str, nonce: int) -> None:
        n = int(nonce)
        last = self.last_nonce(account)
        if n <= last:
            raise StreamsError("bad_nonce", "nonce_not_increasing", {"account": account, "nonce": n, "last": last})
        self._nonces[account] = n

    # ----------------------------
    # Persistence
    # ----------------------------

    def to_json(self) -> Json:
        return {
            "operators": {a: sorted(ops) for a, ops in sorted(self._operators.items())},
            "keys": {a: list(ks) for a, ks in sorted(self._keys.items())},
            "nonces": {a: int(n) for a, n in sorted(self._nonces.items())},
        }

    @classmethod
    def from_json(cls, raw: Any) -> "OperatorConnector":
        d = _as_dict(raw)
        conn = cls()
        for account, ops in _as_dict(d.get("operators")).items():
            for op in ops if isinstance(ops, list) else []:
                conn.set_operator(str(account), str(op), True)
        for account, keys in _as_dict(d.get("keys")).items():
            for pk in keys if isinstance(keys, list) else []:
                conn.register_key(str(account), str(pk))
        for account, n in _as_dict(d.get("nonces")).items():
            try:
                conn._nonces[str(account)] = int(n)
            except Exception:
                continue
        return conn
