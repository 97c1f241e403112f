from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any, Iterable, List, Optional, Tuple

from depth_core.errors import DecodeError
from depth_core.types import (
    Decoded,
    KeyScheme,
    LevelOp,
    LevelUpdate,
    PriceLevel,
    PriceSnapshot,
    Side,
    UpdateBatch,
    VolumeUnit,
    to_decimal,
)


def load_json(raw) -> Any:
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8")
    if isinstance(raw, str):
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise DecodeError(f"invalid json: {exc}") from exc
    return raw


def parse_levels(entries: Optional[Iterable], label: str = "levels") -> Tuple[PriceLevel, ...]:
    """[[price, size, ...], ...] -> PriceLevels. Extra fields are ignored."""
    if entries is None:
        return ()
    if not isinstance(entries, (list, tuple)):
        raise DecodeError(f"{label} must be a list, got {type(entries).__name__}")
    out: List[PriceLevel] = []
    for entry in entries:
        if not isinstance(entry, (list, tuple)) or len(entry) < 2:
            raise DecodeError(f"bad {label} entry {entry!r}")
        try:
            out.append(PriceLevel(price=to_decimal(entry[0]), size=to_decimal(entry[1])))
        except DecodeError as exc:
            raise DecodeError(f"bad {label} entry {entry!r}: {exc}") from exc
    return tuple(out)


def sequence_of(value) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise DecodeError(f"bad sequence {value!r}") from exc


def level_updates(side: Side, entries: Optional[Iterable]) -> List[LevelUpdate]:
    out: List[LevelUpdate] = []
    for level in parse_levels(entries, label=side.value.lower()):
        op = LevelOp.DELETE if level.size == 0 else LevelOp.UPSERT
        out.append(LevelUpdate(side=side, price=level.price, size=level.size, op=op))
    return out


def price_batch(bids, asks, raw=None, sequence: Optional[int] = None) -> UpdateBatch:
    events = level_updates(Side.BID, bids) + level_updates(Side.ASK, asks)
    return UpdateBatch(key_scheme=KeyScheme.PRICE, events=tuple(events), raw=raw, sequence=sequence)


class VenueAdapter(ABC):
    """Translate one venue's wire format into declarative book changes.

    Adapters never touch the book. They also declare the venue's lot
    convention (`native_unit`) and the deepest book it publishes.
    """

    name: str
    platform: str
    key_scheme: KeyScheme = KeyScheme.PRICE
    native_unit: VolumeUnit = VolumeUnit.BASE
    max_depth: int
    # retained levels per side; None keeps the whole book
    depth_cap: Optional[int] = None
    snapshot_source: str = "rest"  # "rest" | "stream"
    dedup_default: bool = False

    def normalize_symbol(self, symbol: str) -> str:
        return symbol.strip().upper()

    @abstractmethod
    def ws_url(self, symbol: str) -> str:
        raise NotImplementedError

    def resolve_ws_url(self, symbol: str, rest_client=None) -> str:
        return self.ws_url(symbol)

    def subscribe_messages(self, symbol: str, depth: int) -> list:
        return []

    def snapshot_request(self, symbol: str, limit: int) -> Tuple[str, dict]:
        raise NotImplementedError(f"{self.name} publishes its snapshot on the stream")

    def parse_snapshot(self, payload) -> PriceSnapshot:
        raise NotImplementedError(f"{self.name} publishes its snapshot on the stream")

    @abstractmethod
    def decode(self, raw) -> Decoded:
        """Return a snapshot, an UpdateBatch or Ignorable; raise DecodeError."""
        raise NotImplementedError
