# src/rewardstreams/runtime/config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from rewardstreams.ledger.constants import DAY_SECONDS, MAX_EPOCH_DURATION, MIN_EPOCH_DURATION

Json = Dict[str, Any]

ENV_PREFIX = "REWARDSTREAMS_"


def _as_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


def _as_bool(v: Any, default: bool) -> bool:
    if v is None:
        return bool(default)
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    return bool(default)


@dataclass(frozen=True)
class StreamsConfig:
    instance_id: str
    mode: str  # "dev" | "testnet" | "prod"
    variant: str  # "staking" | "tracking"

    epoch_duration: int
    epoch_origin: int
    custody_address: str

    db_path: str

    api_host: str
    api_port: int

    allow_unsigned_txs: bool
    check_invariants: bool

    log_level: str

    @property
    def is_prod(self) -> bool:
        return self.mode.strip().lower() == "prod"


_ALLOWED_MODES = {"dev", "testnet", "prod"}
_ALLOWED_VARIANTS = {"staking", "tracking"}


def validate_streams_config(cfg: StreamsConfig) -> None:
    """Fail-fast validation for operator config."""

    if not isinstance(cfg.instance_id, str) or not cfg.instance_id.strip():
        raise ValueError("instance_id must be a non-empty string")

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {_ALLOWED_MODES}; got: {cfg.mode!r}")

    variant = str(cfg.variant or "").strip().lower()
    if variant not in _ALLOWED_VARIANTS:
        raise ValueError(f"variant must be one of {_ALLOWED_VARIANTS}; got: {cfg.variant!r}")

    if int(cfg.epoch_duration) < MIN_EPOCH_DURATION or int(cfg.epoch_duration) > MAX_EPOCH_DURATION:
        raise ValueError(
            f"epoch_duration must be {MIN_EPOCH_DURATION}..{MAX_EPOCH_DURATION} seconds; got: {cfg.epoch_duration}"
        )

    if int(cfg.epoch_origin) < 0:
        raise ValueError(f"epoch_origin must be >= 0; got: {cfg.epoch_origin}")

    if int(cfg.api_port) <= 0 or int(cfg.api_port) > 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")

    for name, p in (("db_path", cfg.db_path), ("custody_address", cfg.custody_address)):
        if not isinstance(p, str) or not p.strip():
            raise ValueError(f"{name} must be a non-empty string")

    if mode == "prod" and cfg.allow_unsigned_txs:
        raise ValueError("allow_unsigned_txs is not permitted in prod mode")


def default_streams_config() -> StreamsConfig:
    return StreamsConfig(
        instance_id="rewardstreams-dev",
        # Without an explicit config file we boot in the strict posture.
        mode="prod",
        variant="staking",
        epoch_duration=14 * DAY_SECONDS,
        epoch_origin=0,
        custody_address="REWARD_STREAMS",
        db_path="./data/rewardstreams.db",
        api_host="0.0.0.0",
        api_port=8000,
        allow_unsigned_txs=False,
        check_invariants=True,
        log_level="INFO",
    )


def _config_from_mapping(raw: Json, base: StreamsConfig) -> StreamsConfig:
    return StreamsConfig(
        instance_id=_as_str(raw.get("instance_id"), base.instance_id),
        mode=_as_str(raw.get("mode"), base.mode).strip().lower(),
        variant=_as_str(raw.get("variant"), base.variant).strip().lower(),
        epoch_duration=_as_int(raw.get("epoch_duration"), base.epoch_duration),
        epoch_origin=_as_int(raw.get("epoch_origin"), base.epoch_origin),
        custody_address=_as_str(raw.get("custody_address"), base.custody_address),
        db_path=_as_str(raw.get("db_path"), base.db_path),
        api_host=_as_str(raw.get("api_host"), base.api_host),
        api_port=_as_int(raw.get("api_port"), base.api_port),
        allow_unsigned_txs=_as_bool(raw.get("allow_unsigned_txs"), base.allow_unsigned_txs),
        check_invariants=_as_bool(raw.get("check_invariants"), base.check_invariants),
        log_level=_as_str(raw.get("log_level"), base.log_level).strip().upper(),
    )


def read_streams_config_file(path: str) -> StreamsConfig:
    p = Path(path)
    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in {".yaml", ".yml"}:
        raw = yaml.safe_load(text)
    else:
        raw = json.loads(text)
    if not isinstance(raw, dict):
        raise ValueError("streams config must be a mapping")

    cfg = _config_from_mapping(raw, default_streams_config())
    validate_streams_config(cfg)
    return cfg


def env_overrides(environ: Optional[Dict[str, str]] = None) -> Json:
    """Collect REWARDSTREAMS_<FIELD> overrides for every config field."""
    env = os.environ if environ is None else environ
    out: Json = {}
    for field in StreamsConfig.__dataclass_fields__:
        v = env.get(ENV_PREFIX + field.upper())
        if v is not None and str(v).strip():
            out[field] = v
    return out


def load_streams_config(*, config_path: Optional[str] = None) -> StreamsConfig:
    p = config_path or os.environ.get("REWARDSTREAMS_CONFIG_PATH")
    base = read_streams_config_file(p) if p else default_streams_config()

    overrides = env_overrides()
    cfg = _config_from_mapping(overrides, base) if overrides else base
    validate_streams_config(cfg)
    return cfg


def apply_streams_config_to_env(cfg: StreamsConfig) -> None:
    """Expose the effective config to modules that read env (sqlite pragmas, logging)."""
    validate_streams_config(cfg)
    os.environ["REWARDSTREAMS_INSTANCE_ID"] = cfg.instance_id
    os.environ["REWARDSTREAMS_MODE"] = (cfg.mode or "prod").strip().lower()
    os.environ["REWARDSTREAMS_VARIANT"] = cfg.variant
    os.environ["REWARDSTREAMS_DB_PATH"] = cfg.db_path
    os.environ["REWARDSTREAMS_LOG_LEVEL"] = cfg.log_level
    os.environ["REWARDSTREAMS_ALLOW_UNSIGNED_TXS"] = "1" if cfg.allow_unsigned_txs else "0"


def with_overrides(cfg: StreamsConfig, **changes: Any) -> StreamsConfig:
    out = replace(cfg, **changes)
    validate_streams_config(out)
    return out
