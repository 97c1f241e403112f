import json
from decimal import Decimal

import pytest

from depth_core.errors import DecodeError
from depth_core.types import Ignorable, LevelOp, PriceSnapshot, UpdateBatch
from depth_recorder.venues.kraken import KrakenAdapter


def test_kraken_subscription_uses_supported_depth():
    adapter = KrakenAdapter()
    msg = adapter.subscribe_messages("XBTUSD", 100)[0]

    assert msg == {"event": "subscribe", "pair": ["XBT/USD"], "subscription": {"name": "book", "depth": 100}}
    assert adapter._select_depth(30) == 100
    assert adapter.normalize_symbol("eth-usd") == "ETH/USD"
    assert adapter.snapshot_source == "stream"


def test_kraken_decode_snapshot_frame():
    adapter = KrakenAdapter()
    frame = [
        336,
        {
            "as": [["101.0", "2.0", "1700000000.1"]],
            "bs": [["100.0", "1.0", "1700000000.2"], ["99.5", "3.0", "1700000000.3"]],
        },
        "book-100",
        "XBT/USD",
    ]

    snap = adapter.decode(json.dumps(frame))

    assert isinstance(snap, PriceSnapshot)
    assert [lvl.price for lvl in snap.bids] == [Decimal("100.0"), Decimal("99.5")]
    assert snap.asks[0].size == Decimal("2.0")


def test_kraken_decode_split_update_frame():
    adapter = KrakenAdapter()
    frame = [
        336,
        {"a": [["101.0", "0.00000000", "1700000000.4"]]},
        {"b": [["100.0", "4.0", "1700000000.5", "r"]], "c": "974942666"},
        "book-100",
        "XBT/USD",
    ]

    batch = adapter.decode(frame)

    assert isinstance(batch, UpdateBatch)
    assert len(batch) == 2
    ops = {e.side.value: e.op for e in batch.events}
    assert ops == {"Ask": LevelOp.DELETE, "Bid": LevelOp.UPSERT}


def test_kraken_decode_events_and_other_channels():
    adapter = KrakenAdapter()
    assert isinstance(adapter.decode({"event": "heartbeat"}), Ignorable)
    assert isinstance(adapter.decode({"event": "subscriptionStatus", "status": "subscribed"}), Ignorable)
    assert isinstance(adapter.decode([1, [["1", "2", "3"]], "trade", "XBT/USD"]), Ignorable)
    with pytest.raises(DecodeError):
        adapter.decode({"event": "mystery"})
    with pytest.raises(DecodeError):
        adapter.decode([336, {"c": "1"}, "book-100", "XBT/USD"])


def test_kraken_rejects_malformed_level_arrays():
    adapter = KrakenAdapter()
    with pytest.raises(DecodeError):
        adapter.decode([336, {"a": "100.1"}, "book-100", "XBT/USD"])
    with pytest.raises(DecodeError):
        adapter.decode([336, {"b": [["NaN", "1", "t"]]}, "book-100", "XBT/USD"])
    with pytest.raises(DecodeError):
        adapter.decode([336, {"as": [["100", "1", "t"]], "bs": {"p": "1"}}, "book-100", "XBT/USD"])
