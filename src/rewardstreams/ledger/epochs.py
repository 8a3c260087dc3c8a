# src/rewardstreams/ledger/epochs.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any


def _as_int(x: Any, default: int = 0) -> int:
    try:
        return int(x)
    except Exception:
        return int(default)


@dataclass(frozen=True, slots=True)
class EpochClock:
    """Maps timestamps (seconds) to fixed-duration epochs and back.

    Epoch 0 starts at `origin`. Every method is total: timestamps before the
    origin land in epoch 0 and negative epochs are treated as epoch 0, so view
    code built on top of the clock never raises.
    """

    duration: int
    origin: int = 0

    def epoch_of(self, ts: Any) -> int:
        t = _as_int(ts, self.origin)
        if t <= self.origin:
            return 0
        return (t - self.origin) // self.duration

    def epoch_start(self, epoch: Any) -> int:
        e = max(_as_int(epoch, 0), 0)
        return self.origin + e * self.duration

    def epoch_end(self, epoch: Any) -> int:
        return self.epoch_start(epoch) + self.duration

    def current(self, now: Any) -> int:
        return self.epoch_of(now)

    def to_json(self) -> dict:
        return {"duration": int(self.duration), "origin": int(self.origin)}
