from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from depth_core.change_gate import ChangeGate, make_change_gate
from depth_core.errors import DecodeError
from depth_core.records import build_rows, ms_timestamp
from depth_core.sync_engine import BookSyncEngine, ResyncPolicy
from depth_core.types import (
    Ignorable,
    OrderSnapshot,
    PersistenceRow,
    PriceSnapshot,
    UpdateBatch,
)
from depth_core.volume import normalize_projection
from depth_recorder.settings import MAX_BUFFER_SIZE, StreamConfig
from depth_recorder.venues import VenueAdapter, get_adapter

NO_ROWS: Tuple[PersistenceRow, ...] = ()


@dataclass
class PipelineStats:
    messages: int = 0
    decode_errors: int = 0
    ignored: int = 0
    snapshots: int = 0
    buffered: int = 0
    applied: int = 0
    emitted: int = 0
    suppressed: int = 0
    rows: int = 0


class StreamPipeline:
    """decode -> book -> top-N -> volume -> change gate -> rows, one message at a time."""

    def __init__(
        self,
        adapter: VenueAdapter,
        levels: int,
        base_volume: bool,
        change_gate: Optional[ChangeGate] = None,
        resync_policy: ResyncPolicy = ResyncPolicy.NONE,
        max_buffer_size: Optional[int] = MAX_BUFFER_SIZE,
    ) -> None:
        self.adapter = adapter
        self.levels = int(levels)
        self.base_volume = base_volume
        self.gate = change_gate if change_gate is not None else make_change_gate(adapter.dedup_default)
        self.engine = BookSyncEngine(
            adapter.key_scheme,
            depth_cap=adapter.depth_cap,
            max_buffer_size=max_buffer_size,
            resync_policy=resync_policy,
        )
        self.stats = PipelineStats()
        self.needs_resync = False
        self.log = logging.getLogger(f"depth_recorder.pipeline.{adapter.name}")

    @classmethod
    def from_config(cls, cfg: StreamConfig, adapter: Optional[VenueAdapter] = None) -> "StreamPipeline":
        return cls(
            adapter=adapter or get_adapter(cfg.venue),
            levels=cfg.levels,
            base_volume=cfg.base_volume,
            change_gate=make_change_gate(cfg.dedup),
            resync_policy=cfg.resync_policy,
        )

    @property
    def platform(self) -> str:
        return self.adapter.platform

    def _wants_refetch(self) -> bool:
        return self.adapter.snapshot_source == "rest" and self.engine.resync_policy is ResyncPolicy.REFETCH

    def reset_for_resync(self) -> None:
        self.engine.reset_for_resync()
        self.gate.reset()
        self.needs_resync = False

    def adopt_snapshot(self, snapshot, recv_ms: Optional[int] = None) -> Tuple[PersistenceRow, ...]:
        timestamp = ms_timestamp(recv_ms)
        result = self.engine.adopt_snapshot(snapshot)
        self.stats.snapshots += 1
        self.log.info("%s snapshot adopted (%s)", self.platform, result.details)
        return self._render(timestamp)

    def handle_message(self, raw, recv_ms: Optional[int] = None) -> Tuple[PersistenceRow, ...]:
        # receipt time, not insertion time
        timestamp = ms_timestamp(recv_ms)
        self.stats.messages += 1
        try:
            decoded = self.adapter.decode(raw)
        except DecodeError as exc:
            self.stats.decode_errors += 1
            self.log.warning("%s dropped undecodable message: %s", self.platform, exc)
            if self.engine.synchronized and self._wants_refetch():
                self.needs_resync = True
            return NO_ROWS

        if isinstance(decoded, Ignorable):
            self.stats.ignored += 1
            return NO_ROWS

        if isinstance(decoded, (PriceSnapshot, OrderSnapshot)):
            self.engine.adopt_snapshot(decoded)
            self.stats.snapshots += 1
            self.log.info("%s snapshot received on stream", self.platform)
            return self._render(timestamp)

        if not isinstance(decoded, UpdateBatch):
            raise TypeError(f"{self.adapter.name} decode returned {type(decoded).__name__}")

        result = self.engine.feed_batch(decoded)
        if result.action == "overflow":
            self.log.warning("%s update buffer overflow before snapshot; buffer cleared", self.platform)
            if self.adapter.snapshot_source == "rest":
                self.needs_resync = True
            return NO_ROWS
        if result.action == "buffered":
            self.stats.buffered += 1
            return NO_ROWS

        self.stats.applied += 1
        return self._render(timestamp)

    def _render(self, timestamp) -> Tuple[PersistenceRow, ...]:
        projection = self.engine.project(self.levels)
        normalized = normalize_projection(projection, self.adapter.native_unit, self.base_volume)
        if not self.gate.should_emit(normalized):
            self.stats.suppressed += 1
            self.log.debug("%s insertion skipped (unchanged)", self.platform)
            return NO_ROWS
        rows = build_rows(normalized, timestamp, self.platform)
        self.stats.emitted += 1
        self.stats.rows += len(rows)
        return rows
