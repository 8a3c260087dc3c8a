from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class StreamsError(Exception):
    """Canonical error type for reward stream operations and dispatch failures."""

    code: str
    reason: str
    details: Any | None = None

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"

    def to_json(self) -> dict:
        return {"code": self.code, "reason": self.reason, "details": self.details}


@dataclass
class AssetError(StreamsError):
    """Failure reported by the fungible asset collaborator (propagated, never swallowed)."""
