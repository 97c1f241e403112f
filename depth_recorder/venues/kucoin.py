from __future__ import annotations

import time
from typing import Tuple

from depth_core.errors import DecodeError
from depth_core.types import Ignorable, PriceSnapshot, VolumeUnit

from .base import VenueAdapter, load_json, parse_levels, price_batch, sequence_of

KUCOIN_REST_BASE_URL = "https://api.kucoin.com"


class KucoinAdapter(VenueAdapter):
    name = "kucoin"
    platform = "Kucoin"
    native_unit = VolumeUnit.BASE
    max_depth = 50
    snapshot_source = "rest"

    def normalize_symbol(self, symbol: str) -> str:
        s = symbol.strip().upper().replace("/", "-")
        if "-" not in s and len(s) > 4 and s.endswith("USDT"):
            return f"{s[:-4]}-USDT"
        return s

    def ws_url(self, symbol: str) -> str:
        raise RuntimeError("Kucoin requires a bullet token; use resolve_ws_url")

    def resolve_ws_url(self, symbol: str, rest_client=None) -> str:
        if rest_client is None:
            raise RuntimeError("Kucoin websocket endpoint needs a REST client for the bullet token")
        payload = rest_client.post_json(f"{KUCOIN_REST_BASE_URL}/api/v1/bullet-public")
        try:
            data = payload["data"]
            endpoint = data["instanceServers"][0]["endpoint"]
            token = data["token"]
        except (KeyError, IndexError, TypeError) as exc:
            raise RuntimeError(f"Unexpected bullet-public payload: {payload!r}") from exc
        return f"{endpoint}?token={token}"

    def subscribe_messages(self, symbol: str, depth: int) -> list:
        return [
            {
                "id": int(time.time() * 1000),
                "type": "subscribe",
                "topic": f"/market/level2:{self.normalize_symbol(symbol)}",
                "response": True,
            }
        ]

    def snapshot_request(self, symbol: str, limit: int) -> Tuple[str, dict]:
        return (
            f"{KUCOIN_REST_BASE_URL}/api/v1/market/orderbook/level2_100",
            {"symbol": self.normalize_symbol(symbol)},
        )

    def parse_snapshot(self, payload) -> PriceSnapshot:
        payload = load_json(payload)
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict) or not isinstance(data.get("bids"), list) or not isinstance(data.get("asks"), list):
            raise DecodeError("kucoin snapshot missing data.bids/data.asks")
        return PriceSnapshot(
            bids=parse_levels(data["bids"], "bid"),
            asks=parse_levels(data["asks"], "ask"),
            raw=payload,
            sequence=sequence_of(data.get("sequence")),
        )

    def decode(self, raw):
        msg = load_json(raw)
        if not isinstance(msg, dict):
            raise DecodeError(f"kucoin frame is not an object: {type(msg).__name__}")
        msg_type = msg.get("type")
        if msg_type in ("welcome", "ack", "pong"):
            return Ignorable(msg_type)
        if msg_type != "message":
            raise DecodeError(f"unknown kucoin frame type {msg_type!r}")
        if msg.get("subject") != "trade.l2update":
            return Ignorable(f"subject={msg.get('subject')}")

        data = msg.get("data")
        if not isinstance(data, dict):
            raise DecodeError(f"kucoin l2update data is not an object: {type(data).__name__}")
        changes = data.get("changes")
        if not isinstance(changes, dict):
            raise DecodeError("kucoin l2update without data.changes")
        return price_batch(
            changes.get("bids"), changes.get("asks"), raw=msg, sequence=sequence_of(data.get("sequenceEnd"))
        )
