from decimal import Decimal

import pytest

from depth_core.errors import DecodeError
from depth_core.types import Ignorable, LevelOp, Side, UpdateBatch
from depth_recorder.venues.kucoin import KUCOIN_REST_BASE_URL, KucoinAdapter


class _BulletClient:
    def __init__(self):
        self.posted = []

    def post_json(self, url, payload=None):
        self.posted.append(url)
        return {
            "code": "200000",
            "data": {
                "token": "tok123",
                "instanceServers": [{"endpoint": "wss://ws-api-spot.kucoin.com/", "pingInterval": 18000}],
            },
        }


def test_kucoin_resolves_ws_url_with_bullet_token():
    client = _BulletClient()
    url = KucoinAdapter().resolve_ws_url("BTC-USDT", client)

    assert url == "wss://ws-api-spot.kucoin.com/?token=tok123"
    assert client.posted == [f"{KUCOIN_REST_BASE_URL}/api/v1/bullet-public"]


def test_kucoin_resolve_requires_rest_client():
    with pytest.raises(RuntimeError):
        KucoinAdapter().resolve_ws_url("BTC-USDT")


def test_kucoin_subscription_topic():
    msgs = KucoinAdapter().subscribe_messages("btcusdt", 50)
    assert msgs[0]["type"] == "subscribe"
    assert msgs[0]["topic"] == "/market/level2:BTC-USDT"


def test_kucoin_snapshot_keeps_full_book_and_sequence():
    adapter = KucoinAdapter()
    bids = [[str(1000 - i), "1"] for i in range(100)]
    asks = [[str(1001 + i), "1"] for i in range(100)]

    url, params = adapter.snapshot_request("BTC-USDT", 1000)
    snap = adapter.parse_snapshot({"code": "200000", "data": {"sequence": "1", "bids": bids, "asks": asks}})

    assert url.endswith("/api/v1/market/orderbook/level2_100")
    assert params == {"symbol": "BTC-USDT"}
    assert len(snap.bids) == 100 and len(snap.asks) == 100
    assert snap.sequence == 1
    assert snap.bids[0].price == Decimal("1000")

    with pytest.raises(DecodeError):
        adapter.parse_snapshot({"code": "400100"})


def test_kucoin_decode_l2update():
    adapter = KucoinAdapter()
    msg = {
        "type": "message",
        "topic": "/market/level2:BTC-USDT",
        "subject": "trade.l2update",
        "data": {
            "sequenceStart": 1,
            "sequenceEnd": 2,
            "changes": {"asks": [["101", "0", "2"]], "bids": [["100", "3", "1"]]},
        },
    }

    batch = adapter.decode(msg)

    assert isinstance(batch, UpdateBatch)
    assert [(e.side, e.op) for e in batch.events] == [(Side.BID, LevelOp.UPSERT), (Side.ASK, LevelOp.DELETE)]
    assert batch.sequence == 2


def test_kucoin_decode_control_frames():
    adapter = KucoinAdapter()
    assert isinstance(adapter.decode({"type": "welcome", "id": "x"}), Ignorable)
    assert isinstance(adapter.decode({"type": "ack", "id": "x"}), Ignorable)
    assert isinstance(adapter.decode({"type": "message", "subject": "trade.ticker", "data": {}}), Ignorable)
    with pytest.raises(DecodeError):
        adapter.decode({"type": "error", "code": 401})
    with pytest.raises(DecodeError):
        adapter.decode({"type": "message", "subject": "trade.l2update", "data": {}})


@pytest.mark.parametrize(
    "data",
    [
        ["x"],
        "changes",
        {"sequenceEnd": 3, "changes": {"asks": [["100.5", "7"], ["NaN", "1"]], "bids": []}},
        {"sequenceEnd": 3, "changes": {"asks": [["100.5", "7"], ["101", "Infinity"]], "bids": []}},
        {"sequenceEnd": 3, "changes": {"asks": "100.5", "bids": []}},
        {"sequenceEnd": 3, "changes": {"asks": [["100.5"]], "bids": []}},
    ],
)
def test_kucoin_malformed_l2update_is_a_decode_error(data):
    adapter = KucoinAdapter()
    with pytest.raises(DecodeError):
        adapter.decode({"type": "message", "subject": "trade.l2update", "data": data})
