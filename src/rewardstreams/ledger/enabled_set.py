# src/rewardstreams/ledger/enabled_set.py
from __future__ import annotations

from typing import Any, Iterable, Iterator, List

from rewardstreams.ledger.constants import MAX_REWARDS_ENABLED


class EnabledRewards:
    """Insertion-ordered, bounded set of reward token ids.

    The set does not raise on overflow by itself; `is_full()` lets the caller
    decide which error to surface.
    """

    __slots__ = ("_items", "max_size")

    def __init__(self, items: Iterable[str] = (), *, max_size: int = MAX_REWARDS_ENABLED) -> None:
        self.max_size = int(max_size)
        self._items: List[str] = []
        for it in items:
            self.insert(it)

    def __contains__(self, item: object) -> bool:
        return item in self._items

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, EnabledRewards):
            return self._items == other._items
        return NotImplemented

    def __repr__(self) -> str:
        return f"EnabledRewards({self._items!r})"

    def is_full(self) -> bool:
        return len(self._items) >= self.max_size

    def insert(self, item: str) -> bool:
        """Append `item`; returns False if it was already present."""
        if item in self._items:
            return False
        self._items.append(item)
        return True

    def remove(self, item: str) -> bool:
        """Drop `item` keeping the order of the rest; False if absent."""
        try:
            self._items.remove(item)
        except ValueError:
            return False
        return True

    def to_list(self) -> List[str]:
        return list(self._items)

    @classmethod
    def from_list(cls, raw: Any, *, max_size: int = MAX_REWARDS_ENABLED) -> "EnabledRewards":
        items = [str(x) for x in raw if isinstance(x, str) and x] if isinstance(raw, list) else []
        return cls(items, max_size=max_size)
