from __future__ import annotations

from decimal import Decimal

import pytest

from depth_core.sync_engine import BookSyncEngine, ResyncPolicy, SyncState
from depth_core.types import (
    IdentifiedOrder,
    KeyScheme,
    LevelOp,
    LevelUpdate,
    OrderEvent,
    OrderOp,
    OrderSnapshot,
    PriceLevel,
    PriceSnapshot,
    Side,
    UpdateBatch,
)

D = Decimal


def _batch(*updates):
    return UpdateBatch(
        key_scheme=KeyScheme.PRICE,
        events=tuple(LevelUpdate(side=s, price=D(p), size=D(q), op=LevelOp.DELETE if D(q) == 0 else LevelOp.UPSERT) for s, p, q in updates),
    )


def _snapshot():
    return PriceSnapshot(
        bids=(PriceLevel(D("99"), D("1")),),
        asks=(PriceLevel(D("100"), D("1")), PriceLevel(D("101"), D("1"))),
    )


def test_batches_buffer_until_snapshot_then_replay_in_order():
    engine = BookSyncEngine(KeyScheme.PRICE)
    engine.begin()
    assert engine.state is SyncState.AWAITING_SNAPSHOT

    r1 = engine.feed_batch(_batch((Side.ASK, "100.5", "1")))
    r2 = engine.feed_batch(_batch((Side.ASK, "100.5", "3")))
    assert (r1.action, r2.action) == ("buffered", "buffered")

    result = engine.adopt_snapshot(_snapshot())

    assert result.action == "synced"
    assert result.details == "replayed=2"
    assert engine.synchronized
    assert engine.buffer == []
    assert engine.project(2).asks == (PriceLevel(D("100"), D("1")), PriceLevel(D("100.5"), D("3")))


def test_buffered_batches_covered_by_snapshot_sequence_are_skipped():
    engine = BookSyncEngine(KeyScheme.PRICE)
    for seq, size in ((4, "7"), (5, "8"), (6, "9")):
        batch = _batch((Side.BID, "99", size))
        engine.feed_batch(UpdateBatch(key_scheme=batch.key_scheme, events=batch.events, sequence=seq))

    snap = _snapshot()
    result = engine.adopt_snapshot(PriceSnapshot(bids=snap.bids, asks=snap.asks, sequence=5))

    assert result.details == "replayed=1 stale=2"
    assert engine.project(1).bids == (PriceLevel(D("99"), D("9")),)


def test_batches_without_sequence_always_replay():
    engine = BookSyncEngine(KeyScheme.PRICE)
    engine.feed_batch(_batch((Side.BID, "99", "7")))

    snap = _snapshot()
    result = engine.adopt_snapshot(PriceSnapshot(bids=snap.bids, asks=snap.asks, sequence=5))

    assert result.details == "replayed=1"
    assert engine.project(1).bids == (PriceLevel(D("99"), D("7")),)


def test_snapshot_then_upsert_projects_top_two():
    engine = BookSyncEngine(KeyScheme.PRICE)
    engine.adopt_snapshot(_snapshot())

    result = engine.feed_batch(_batch((Side.ASK, "100.5", "1")))

    assert result.action == "applied"
    assert engine.project(2).asks == (PriceLevel(D("100"), D("1")), PriceLevel(D("100.5"), D("1")))


def test_buffer_overflow_clears_buffer():
    engine = BookSyncEngine(KeyScheme.PRICE, max_buffer_size=2)
    r1 = engine.feed_batch(_batch())
    r2 = engine.feed_batch(_batch())
    r3 = engine.feed_batch(_batch())

    assert r1.action == "buffered"
    assert r2.action == "buffered"
    assert r3.action == "overflow"
    assert r3.details == "buffer_overflow"
    assert engine.buffer == []


def test_later_snapshot_replaces_book():
    engine = BookSyncEngine(KeyScheme.PRICE)
    engine.adopt_snapshot(_snapshot())

    result = engine.adopt_snapshot(PriceSnapshot(bids=(), asks=(PriceLevel(D("200"), D("2")),)))

    assert result.details == "resnapshot"
    assert engine.project(5).bids == ()
    assert engine.project(5).asks == (PriceLevel(D("200"), D("2")),)


def test_projection_before_snapshot_is_refused():
    engine = BookSyncEngine(KeyScheme.PRICE)
    with pytest.raises(RuntimeError):
        engine.project(5)
    with pytest.raises(RuntimeError):
        engine.project_side(Side.BID, 5)


def test_key_scheme_mismatch_is_rejected():
    engine = BookSyncEngine(KeyScheme.PRICE)
    with pytest.raises(TypeError):
        engine.adopt_snapshot(OrderSnapshot(orders=()))
    with pytest.raises(TypeError):
        engine.feed_batch(UpdateBatch(key_scheme=KeyScheme.ID, events=()))


def test_reset_for_resync_drops_book_and_waits():
    engine = BookSyncEngine(KeyScheme.PRICE, resync_policy=ResyncPolicy.REFETCH)
    engine.adopt_snapshot(_snapshot())

    engine.reset_for_resync()

    assert engine.state is SyncState.AWAITING_SNAPSHOT
    assert engine.feed_batch(_batch((Side.BID, "98", "1"))).action == "buffered"
    with pytest.raises(RuntimeError):
        engine.project(1)


def test_id_keyed_engine_runs_order_events():
    engine = BookSyncEngine(KeyScheme.ID)
    engine.adopt_snapshot(
        OrderSnapshot(orders=(IdentifiedOrder(id=1, side=Side.BID, price=D("10"), size=D("5")),))
    )

    engine.feed_batch(
        UpdateBatch(
            key_scheme=KeyScheme.ID,
            events=(
                OrderEvent(id=2, op=OrderOp.INSERT, fields={"side": Side.ASK, "price": "11", "size": "1"}),
                OrderEvent(id=1, op=OrderOp.DELETE),
            ),
        )
    )

    projected = engine.project(5)
    assert projected.bids == ()
    assert projected.asks == (PriceLevel(D("11"), D("1")),)
