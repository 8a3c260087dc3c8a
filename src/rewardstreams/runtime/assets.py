# src/rewardstreams/runtime/assets.py
from __future__ import annotations

"""Fungible asset collaborator.

The engine depends only on the `FungibleAssets` protocol (transfer,
transfer_from, balance_of). `AssetBook` is the in-process implementation used
by the executor and tests: a multi-token balance/allowance book with optional
per-token transfer fees, which lets tests model fee-on-transfer assets.
"""

from typing import Any, Dict, Protocol, runtime_checkable

from rewardstreams.runtime.errors import AssetError

Json = Dict[str, Any]

BPS_DENOMINATOR = 10_000


def _as_int(x: Any, default: int = 0) -> int:
    try:
        return int(x)
    except Exception:
        return int(default)


def _as_dict(x: Any) -> Json:
    return x if isinstance(x, dict) else {}


@runtime_checkable
class FungibleAssets(Protocol):
    def transfer(self, token: str, sender: str, to: str, amount: int) -> bool: ...

    def transfer_from(self, token: str, spender: str, owner: str, to: str, amount: int) -> bool: ...

    def balance_of(self, token: str, account: str) -> int: ...


class AssetBook:
    """In-memory token balances keyed by token id then account id."""

    def __init__(self) -> None:
        self._balances: Dict[str, Dict[str, int]] = {}
        self._allowances: Dict[str, Dict[str, Dict[str, int]]] = {}
        self._fees_bps: Dict[str, int] = {}

    # ----------------------------
    # Queries
    # ----------------------------

    def balance_of(self, token: str, account: str) -> int:
        return int(self._balances.get(token, {}).get(account, 0))

    def allowance(self, token: str, owner: str, spender: str) -> int:
        return int(self._allowances.get(token, {}).get(owner, {}).get(spender, 0))

    # ----------------------------
    # Admin / setup
    # ----------------------------

    def mint(self, token: str, account: str, amount: int) -> None:
        amt = int(amount)
        if amt < 0:
            raise AssetError("invalid_amount", "negative_mint", {"token": token, "amount": amt})
        self._credit(token, account, amt)

    def approve(self, token: str, owner: str, spender: str, amount: int) -> bool:
        amt = int(amount)
        if amt < 0:
            raise AssetError("invalid_amount", "negative_allowance", {"token": token, "amount": amt})
        self._allowances.setdefault(token, {}).setdefault(owner, {})[spender] = amt
        return True

    def set_transfer_fee(self, token: str, fee_bps: int) -> None:
        bps = int(fee_bps)
        if bps < 0 or bps > BPS_DENOMINATOR:
            raise AssetError("invalid_amount", "fee_out_of_range", {"token": token, "fee_bps": bps})
        if bps:
            self._fees_bps[token] = bps
        else:
            self._fees_bps.pop(token, None)

    # ----------------------------
    # Transfers
    # ----------------------------

    def transfer(self, token: str, sender: str, to: str, amount: int) -> bool:
        self._move(token, sender, to, int(amount))
        return True

    def transfer_from(self, token: str, spender: str, owner: str, to: str, amount: int) -> bool:
        amt = int(amount)
        allowed = self.allowance(token, owner, spender)
        if spender != owner and allowed < amt:
            raise AssetError(
                "insufficient_allowance",
                "allowance_too_low",
                {"token": token, "owner": owner, "spender": spender, "allowance": allowed, "amount": amt},
            )
        self._move(token, owner, to, amt)
        if spender != owner:
            self._allowances.setdefault(token, {}).setdefault(owner, {})[spender] = allowed - amt
        return True

    def _move(self, token: str, sender: str, to: str, amount: int) -> None:
        if amount < 0:
            raise AssetError("invalid_amount", "negative_transfer", {"token": token, "amount": amount})
        if not to:
            raise AssetError("invalid_recipient", "empty_recipient", {"token": token})
        have = self.balance_of(token, sender)
        if have < amount:
            raise AssetError(
                "insufficient_balance",
                "balance_too_low",
                {"token": token, "account": sender, "balance": have, "amount": amount},
            )
        fee = amount * self._fees_bps.get(token, 0) // BPS_DENOMINATOR
        self._balances.setdefault(token, {})[sender] = have - amount
        # The fee is burned, so the recipient sees less than was sent.
        self._credit(token, to, amount - fee)

    def _credit(self, token: str, account: str, amount: int) -> None:
        by_acct = self._balances.setdefault(token, {})
        by_acct[account] = int(by_acct.get(account, 0)) + int(amount)

    # ----------------------------
    # Persistence
    # ----------------------------

    def to_json(self) -> Json:
        return {
            "balances": {t: {a: int(v) for a, v in sorted(b.items()) if v} for t, b in sorted(self._balances.items())},
            "allowances": {
                t: {o: {s: int(v) for s, v in sorted(sp.items()) if v} for o, sp in sorted(by_owner.items())}
                for t, by_owner in sorted(self._allowances.items())
            },
            "fees_bps": {t: int(v) for t, v in sorted(self._fees_bps.items())},
        }

    @classmethod
    def from_json(cls, raw: Any) -> "AssetBook":
        d = _as_dict(raw)
        book = cls()
        for token, by_acct in _as_dict(d.get("balances")).items():
            for acct, v in _as_dict(by_acct).items():
                book._credit(str(token), str(acct), _as_int(v, 0))
        for token, by_owner in _as_dict(d.get("allowances")).items():
            for owner, by_spender in _as_dict(by_owner).items():
                for spender, v in _as_dict(by_spender).items():
                    book.approve(str(token), str(owner), str(spender), _as_int(v, 0))
        for token, v in _as_dict(d.get("fees_bps")).items():
            book.set_transfer_fee(str(token), _as_int(v, 0))
        return book
