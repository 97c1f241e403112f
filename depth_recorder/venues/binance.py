from __future__ import annotations

from typing import Tuple

from depth_core.errors import DecodeError
from depth_core.types import Ignorable, PriceSnapshot, VolumeUnit

from .base import VenueAdapter, load_json, parse_levels, price_batch, sequence_of

BINANCE_REST_BASE_URL = "https://api.binance.com"


class BinanceAdapter(VenueAdapter):
    """Spot diff-depth stream bridged onto a REST snapshot.

    The diff stream carries every level change (not a rolling top-N), so the
    book stays consistent below the recorded depth. `lastUpdateId` on the
    snapshot and `u` on each diff drive the stale-update skip on adoption.
    """

    name = "binance"
    platform = "Binance"
    native_unit = VolumeUnit.BASE
    max_depth = 20
    snapshot_source = "rest"

    def normalize_symbol(self, symbol: str) -> str:
        return symbol.strip().upper().replace("/", "").replace("-", "")

    def ws_url(self, symbol: str) -> str:
        sym = self.normalize_symbol(symbol).lower()
        return f"wss://stream.binance.com:9443/ws/{sym}@depth@100ms"

    def snapshot_request(self, symbol: str, limit: int) -> Tuple[str, dict]:
        return (
            f"{BINANCE_REST_BASE_URL}/api/v3/depth",
            {"symbol": self.normalize_symbol(symbol), "limit": int(limit)},
        )

    def parse_snapshot(self, payload) -> PriceSnapshot:
        snap = load_json(payload)
        if not isinstance(snap, dict):
            raise DecodeError("binance snapshot payload must be an object")
        bids = snap.get("bids")
        asks = snap.get("asks")
        if not isinstance(bids, list) or not isinstance(asks, list):
            raise DecodeError("binance snapshot bids/asks must be lists")
        return PriceSnapshot(
            bids=parse_levels(bids, "bid"),
            asks=parse_levels(asks, "ask"),
            raw=snap,
            sequence=sequence_of(snap.get("lastUpdateId")),
        )

    def decode(self, raw):
        msg = load_json(raw)
        if not isinstance(msg, dict):
            raise DecodeError(f"binance frame is not an object: {type(msg).__name__}")
        # combined-stream envelope
        if "stream" in msg and isinstance(msg.get("data"), dict):
            msg = msg["data"]

        if msg.get("e") == "depthUpdate":
            return price_batch(msg.get("b"), msg.get("a"), raw=msg, sequence=sequence_of(msg.get("u")))
        if "bids" in msg or "asks" in msg:
            return price_batch(
                msg.get("bids"), msg.get("asks"), raw=msg, sequence=sequence_of(msg.get("lastUpdateId"))
            )
        if "result" in msg and "id" in msg:
            return Ignorable("subscription_ack")
        raise DecodeError(f"unrecognized binance frame keys={sorted(msg)}")
