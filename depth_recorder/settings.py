from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from depth_core.errors import InvalidVolumeConfig
from depth_core.sync_engine import ResyncPolicy
from depth_recorder.venues import get_adapter


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "y")


LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
HEARTBEAT_SEC = _env_float("HEARTBEAT_SEC", 30.0)
MAX_BUFFER_SIZE = _env_int("MAX_BUFFER_SIZE", 200_000)

# Sink writer
SINK_QUEUE_SIZE = _env_int("SINK_QUEUE_SIZE", 1000)
SINK_TIMEOUT_S = _env_float("SINK_TIMEOUT_S", 10.0)

# WS keepalive/reconnect
WS_PING_INTERVAL_S = _env_int("WS_PING_INTERVAL_S", 20)
WS_PING_TIMEOUT_S = _env_int("WS_PING_TIMEOUT_S", 60)
WS_RECONNECT_BACKOFF_S = _env_float("WS_RECONNECT_BACKOFF_S", 1.0)
WS_RECONNECT_BACKOFF_MAX_S = _env_float("WS_RECONNECT_BACKOFF_MAX_S", 30.0)

# TLS verification should remain enabled by default.
INSECURE_TLS = _env_bool("INSECURE_TLS", False)


@dataclass
class StreamConfig:
    venue: str
    symbol: str
    levels: int
    base_volume: bool
    dedup: bool
    resync_policy: ResyncPolicy = ResyncPolicy.NONE
    overflow_policy: str = "drop_oldest"

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "StreamConfig":
        venue = str(raw.get("venue") or "").strip().lower()
        adapter = get_adapter(venue)
        symbol = str(raw.get("symbol") or "").strip()
        if not symbol:
            raise ValueError(f"stream {venue!r} requires a symbol (trade pair)")

        try:
            levels = int(raw.get("levels", adapter.max_depth))
        except (TypeError, ValueError) as exc:
            raise ValueError(f"levels must be an integer (got {raw.get('levels')!r})") from exc
        if not 1 <= levels <= adapter.max_depth:
            raise ValueError(
                f"Invalid number of levels for {adapter.platform}: choose between 1 and {adapter.max_depth} (got {levels})"
            )

        base_volume = raw.get("base_volume", True)
        if not isinstance(base_volume, bool):
            raise InvalidVolumeConfig(f"base_volume must be true or false (got {base_volume!r})")

        dedup = raw.get("dedup", adapter.dedup_default)
        if not isinstance(dedup, bool):
            raise ValueError(f"dedup must be true or false (got {dedup!r})")

        overflow_policy = str(raw.get("overflow_policy", "drop_oldest")).strip().lower()
        if overflow_policy not in ("drop_oldest", "block"):
            raise ValueError(f"overflow_policy must be drop_oldest or block (got {overflow_policy!r})")

        return cls(
            venue=venue,
            symbol=symbol,
            levels=levels,
            base_volume=base_volume,
            dedup=dedup,
            resync_policy=ResyncPolicy(str(raw.get("resync_policy", "none")).strip().lower()),
            overflow_policy=overflow_policy,
        )


@dataclass
class RecorderConfig:
    streams: List[StreamConfig]
    sink: Dict[str, Any] = field(default_factory=lambda: {"kind": "csv", "path": "data/orderbook.csv.gz"})
    log_level: str = LOG_LEVEL


def load_config(path: Optional[str | Path] = None) -> RecorderConfig:
    path = path or os.getenv("CONFIG_PATH", "config/streams.yaml")
    with open(path, "r") as f:
        raw = yaml.safe_load(f) or {}
    streams_raw = raw.get("streams") or []
    if not streams_raw:
        raise ValueError(f"{path}: no streams configured")
    streams = [StreamConfig.from_mapping(s) for s in streams_raw]
    cfg = RecorderConfig(streams=streams, log_level=str(raw.get("log_level", LOG_LEVEL)))
    if raw.get("sink"):
        cfg.sink = dict(raw["sink"])
    return cfg
