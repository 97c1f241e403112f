from __future__ import annotations

from typing import Any, Dict, List

from depth_core.errors import DecodeError
from depth_core.order_set import order_from_fields
from depth_core.types import (
    Ignorable,
    KeyScheme,
    OrderEvent,
    OrderOp,
    OrderSnapshot,
    Side,
    UpdateBatch,
    VolumeUnit,
    to_decimal,
)

from .base import VenueAdapter, load_json

_SIDES = {"Buy": Side.BID, "Sell": Side.ASK}
_ACTIONS = {"insert": OrderOp.INSERT, "update": OrderOp.UPDATE, "delete": OrderOp.DELETE}


def _fields(entry: Dict[str, Any]) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    side = entry.get("side")
    if side is not None:
        if side not in _SIDES:
            raise DecodeError(f"unknown bitmex side {side!r}")
        fields["side"] = _SIDES[side]
    for name in ("price", "size"):
        if entry.get(name) is not None:
            try:
                fields[name] = to_decimal(entry[name])
            except DecodeError as exc:
                raise DecodeError(f"bitmex entry id={entry.get('id')!r} bad {name}: {exc}") from exc
    return fields


class BitmexAdapter(VenueAdapter):
    """orderBookL2 feed: levels are keyed by id and sized in contracts (quote)."""

    name = "bitmex"
    platform = "BitMEX"
    key_scheme = KeyScheme.ID
    native_unit = VolumeUnit.QUOTE
    max_depth = 25
    snapshot_source = "stream"
    dedup_default = True
    table = "orderBookL2_25"

    def normalize_symbol(self, symbol: str) -> str:
        s = symbol.strip().upper().replace("/", "").replace("-", "")
        if s.startswith("BTC"):
            s = "XBT" + s[3:]
        return s

    def ws_url(self, symbol: str) -> str:
        return "wss://ws.bitmex.com/realtime"

    def subscribe_messages(self, symbol: str, depth: int) -> list:
        return [{"op": "subscribe", "args": [f"{self.table}:{self.normalize_symbol(symbol)}"]}]

    def decode(self, raw):
        msg = load_json(raw)
        if not isinstance(msg, dict):
            raise DecodeError(f"bitmex frame is not an object: {type(msg).__name__}")
        if "table" not in msg:
            if "info" in msg or "success" in msg:
                return Ignorable("control")
            if "error" in msg:
                raise DecodeError(f"bitmex error frame: {msg.get('error')}")
            raise DecodeError(f"unrecognized bitmex frame keys={sorted(msg)}")
        if msg.get("table") != self.table:
            return Ignorable(f"table={msg.get('table')}")

        data = msg.get("data")
        if not isinstance(data, list):
            raise DecodeError("bitmex frame data must be a list")
        for entry in data:
            if not isinstance(entry, dict) or entry.get("id") is None:
                raise DecodeError(f"bitmex entry without id: {entry!r}")

        action = msg.get("action")
        if action == "partial":
            orders = tuple(order_from_fields(e["id"], _fields(e)) for e in data)
            return OrderSnapshot(orders=orders, raw=msg)
        if action not in _ACTIONS:
            raise DecodeError(f"unknown bitmex action {action!r}")

        op = _ACTIONS[action]
        events: List[OrderEvent] = []
        for entry in data:
            fields = {} if op is OrderOp.DELETE else _fields(entry)
            if op is OrderOp.INSERT:
                # validate up front so a bad insert rejects the whole frame
                order_from_fields(entry["id"], fields)
            events.append(OrderEvent(id=entry["id"], op=op, fields=fields))
        return UpdateBatch(key_scheme=KeyScheme.ID, events=tuple(events), raw=msg)
