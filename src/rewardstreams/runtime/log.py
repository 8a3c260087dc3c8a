# src/rewardstreams/runtime/log.py
from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict

Json = Dict[str, Any]


def event_record(logger_name: str, event: str, fields: Json) -> Json:
    """Build the JSON object for one event. `component` is the last dotted part of the logger name."""
    rec: Json = {
        "ts_ms": int(time.time() * 1000),
        "component": str(logger_name or "").rsplit(".", 1)[-1],
        "event": str(event),
    }
    for k, v in fields.items():
        rec[k] = v
    return rec


def log_event(logger: logging.Logger, event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    """Emit one JSONL line for a ledger/engine/executor event.

    Values must be JSON-native; anything else is rendered with repr() so a bad
    field never drops the event.
    """
    if not logger.isEnabledFor(level):
        return
    rec = event_record(logger.name, event, fields)
    logger.log(level, json.dumps(rec, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=repr))
