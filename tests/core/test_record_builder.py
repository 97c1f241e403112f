from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from depth_core.records import build_rows, ms_timestamp, projection_key
from depth_core.types import PriceLevel, ProjectedBook, Side

D = Decimal


def test_rows_are_bids_then_asks_with_one_based_levels():
    ts = ms_timestamp(1_700_000_000_123)
    book = ProjectedBook(
        bids=(PriceLevel(D("99"), D("1")), PriceLevel(D("98"), D("2"))),
        asks=(PriceLevel(D("100"), D("3")),),
    )

    rows = build_rows(book, ts, "Binance")

    assert [(r.level, r.side, r.price, r.volume) for r in rows] == [
        (1, Side.BID, D("99"), D("1")),
        (2, Side.BID, D("98"), D("2")),
        (1, Side.ASK, D("100"), D("3")),
    ]
    assert {r.timestamp for r in rows} == {ts}
    assert {r.platform for r in rows} == {"Binance"}


def test_row_dict_uses_persisted_column_names():
    row = build_rows(ProjectedBook(asks=(PriceLevel(D("100"), D("3")),)), ms_timestamp(0), "Kraken")[0]

    assert row.as_dict() == {
        "timestamp": datetime(1970, 1, 1, tzinfo=timezone.utc),
        "platform": "Kraken",
        "order_level": 1,
        "order_type": "Ask",
        "price": D("100"),
        "volume": D("3"),
    }


def test_empty_projection_yields_no_rows():
    assert build_rows(ProjectedBook(), ms_timestamp(), "Kucoin") == ()


def test_ms_timestamp_truncates_to_milliseconds():
    ts = ms_timestamp(1_700_000_000_123)
    assert ts.tzinfo is timezone.utc
    assert ts.microsecond == 123_000
    assert ms_timestamp().microsecond % 1000 == 0


def test_projection_key_matches_row_keys():
    book = ProjectedBook(bids=(PriceLevel(D("99"), D("1")),), asks=(PriceLevel(D("100"), D("3")),))
    rows = build_rows(book, ms_timestamp(0), "BitMEX")
    assert projection_key(book) == tuple(r.key() for r in rows)
