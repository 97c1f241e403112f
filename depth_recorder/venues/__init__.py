from __future__ import annotations

from .base import VenueAdapter
from .binance import BinanceAdapter
from .bitmex import BitmexAdapter
from .kraken import KrakenAdapter
from .kucoin import KucoinAdapter


_ADAPTERS = {
    "binance": BinanceAdapter,
    "bitmex": BitmexAdapter,
    "kraken": KrakenAdapter,
    "kucoin": KucoinAdapter,
}


def get_adapter(name: str) -> VenueAdapter:
    key = (name or "").strip().lower()
    if key not in _ADAPTERS:
        raise ValueError(f"Unknown venue {name!r}. Available: {', '.join(sorted(_ADAPTERS))}")
    return _ADAPTERS[key]()


__all__ = [
    "BinanceAdapter",
    "BitmexAdapter",
    "KrakenAdapter",
    "KucoinAdapter",
    "VenueAdapter",
    "get_adapter",
]
