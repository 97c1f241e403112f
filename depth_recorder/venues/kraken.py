from __future__ import annotations

from typing import List

from depth_core.errors import DecodeError
from depth_core.types import Ignorable, PriceSnapshot, VolumeUnit

from .base import VenueAdapter, load_json, parse_levels, price_batch


def _side_entries(payloads: List[dict], key: str) -> list:
    out: list = []
    for p in payloads:
        entries = p.get(key)
        if entries is None:
            continue
        if not isinstance(entries, list):
            raise DecodeError(f"kraken {key!r} must be a list, got {type(entries).__name__}")
        out.extend(entries)
    return out


class KrakenAdapter(VenueAdapter):
    name = "kraken"
    platform = "Kraken"
    native_unit = VolumeUnit.BASE
    max_depth = 100
    # v1 book channel keeps the subscribed depth; levels pushed past it are dropped
    depth_cap = 100
    snapshot_source = "stream"
    _allowed_depths = (10, 25, 100, 500, 1000)

    def _select_depth(self, depth: int) -> int:
        if depth in self._allowed_depths:
            return depth
        for candidate in self._allowed_depths:
            if depth <= candidate:
                return candidate
        return self._allowed_depths[-1]

    def normalize_symbol(self, symbol: str) -> str:
        s = symbol.strip().upper()
        if "/" in s:
            return s
        if "-" in s:
            base, quote = s.split("-", 1)
            return f"{base}/{quote}"
        if s.endswith("USDT") and len(s) > 4:
            return f"{s[:-4]}/USDT"
        if len(s) >= 6:
            # Best-effort split for common pairs like XBTUSD -> XBT/USD
            return f"{s[:-3]}/{s[-3:]}"
        return s

    def ws_url(self, symbol: str) -> str:
        return "wss://ws.kraken.com"

    def subscribe_messages(self, symbol: str, depth: int) -> list:
        return [
            {
                "event": "subscribe",
                "pair": [self.normalize_symbol(symbol)],
                "subscription": {"name": "book", "depth": self._select_depth(int(depth))},
            }
        ]

    def decode(self, raw):
        # v1 book frames: [chanId, {..}, ({..},) "book-<depth>", "<pair>"]
        msg = load_json(raw)
        if isinstance(msg, dict):
            event = msg.get("event")
            if event in ("heartbeat", "systemStatus", "subscriptionStatus", "pong"):
                return Ignorable(str(event))
            raise DecodeError(f"unknown kraken event {event!r}")
        if not isinstance(msg, list) or len(msg) < 2:
            raise DecodeError("kraken frame must be a non-empty list")

        payloads: List[dict] = [part for part in msg[1:] if isinstance(part, dict)]
        channel = next((part for part in msg[1:] if isinstance(part, str)), "")
        if channel and not channel.startswith("book"):
            return Ignorable(f"channel={channel}")
        if not payloads:
            raise DecodeError("kraken book frame without payload")

        if any("as" in p or "bs" in p for p in payloads):
            return PriceSnapshot(
                bids=parse_levels(_side_entries(payloads, "bs"), "bid"),
                asks=parse_levels(_side_entries(payloads, "as"), "ask"),
                raw=msg,
            )

        asks = _side_entries(payloads, "a")
        bids = _side_entries(payloads, "b")
        if not asks and not bids:
            raise DecodeError("kraken book update carries neither a nor b")
        return price_batch(bids, asks, raw=msg)
