from __future__ import annotations

import logging
from dataclasses import replace
from itertools import count, islice
from typing import Any, Dict, Hashable, Iterable, Mapping, Tuple

from sortedcontainers import SortedDict

from .errors import DecodeError, DuplicateIdError, UnknownIdError
from .types import (
    IdentifiedOrder,
    OrderEvent,
    OrderOp,
    OrderSnapshot,
    PriceLevel,
    ProjectedBook,
    Side,
    UpdateBatch,
    to_decimal,
)

log = logging.getLogger("depth_core.order_set")

_ORDER_FIELDS = ("side", "price", "size")


def _coerce_side(value) -> Side:
    if isinstance(value, Side):
        return value
    try:
        return Side(value)
    except ValueError as exc:
        raise DecodeError(f"unknown side {value!r}") from exc


def order_from_fields(order_id: Hashable, fields: Mapping[str, Any]) -> IdentifiedOrder:
    missing = [name for name in _ORDER_FIELDS if fields.get(name) is None]
    if missing:
        raise DecodeError(f"order {order_id!r} missing fields {missing}")
    return IdentifiedOrder(
        id=order_id,
        side=_coerce_side(fields["side"]),
        price=to_decimal(fields["price"]),
        size=to_decimal(fields["size"]),
    )


class IdentifiedOrderSet:
    """Book for venues that key updates by order/level id.

    Orders live in an id map; each side keeps a SortedDict keyed by
    (price, insertion_seq) so projection needs no sort and equal prices keep
    insertion order.
    """

    def __init__(self) -> None:
        self._orders: Dict[Hashable, IdentifiedOrder] = {}
        self._seq_of: Dict[Hashable, int] = {}
        self._index: Dict[Side, SortedDict] = {Side.BID: SortedDict(), Side.ASK: SortedDict()}
        self._seq = count()

    def __len__(self) -> int:
        return len(self._orders)

    def __contains__(self, order_id) -> bool:
        return order_id in self._orders

    def get(self, order_id):
        return self._orders.get(order_id)

    def clear(self) -> None:
        self._orders.clear()
        self._seq_of.clear()
        for side_index in self._index.values():
            side_index.clear()

    @staticmethod
    def _index_key(order: IdentifiedOrder, seq: int):
        # both sides iterate ascending: best price first, then insertion order
        if order.side is Side.BID:
            return (-order.price, seq)
        return (order.price, seq)

    def _index_add(self, order: IdentifiedOrder, seq: int) -> None:
        self._orders[order.id] = order
        self._seq_of[order.id] = seq
        self._index[order.side][self._index_key(order, seq)] = order.id

    def _index_drop(self, order_id) -> None:
        order = self._orders.pop(order_id)
        seq = self._seq_of.pop(order_id)
        del self._index[order.side][self._index_key(order, seq)]

    def apply_snapshot(self, orders: OrderSnapshot | Iterable[IdentifiedOrder]) -> None:
        if isinstance(orders, OrderSnapshot):
            orders = orders.orders
        self.clear()
        for order in orders:
            if order.id in self._orders:
                log.warning("Snapshot repeats order id=%r; keeping the later entry", order.id)
                self._index_drop(order.id)
            self._index_add(order, next(self._seq))

    def insert(self, order: IdentifiedOrder) -> None:
        if order.id in self._orders:
            raise DuplicateIdError(order.id)
        self._index_add(order, next(self._seq))

    def update(self, order_id, fields: Mapping[str, Any]) -> IdentifiedOrder:
        current = self._orders.get(order_id)
        if current is None:
            raise UnknownIdError(order_id)
        changes = {}
        if fields.get("side") is not None:
            changes["side"] = _coerce_side(fields["side"])
        if fields.get("price") is not None:
            changes["price"] = to_decimal(fields["price"])
        if fields.get("size") is not None:
            changes["size"] = to_decimal(fields["size"])
        merged = replace(current, **changes)
        seq = self._seq_of[order_id]
        self._index_drop(order_id)
        self._index_add(merged, seq)
        return merged

    def delete(self, order_id) -> bool:
        if order_id not in self._orders:
            return False
        self._index_drop(order_id)
        return True

    def apply_event(self, event: OrderEvent) -> None:
        if event.op is OrderOp.INSERT:
            order = order_from_fields(event.id, event.fields)
            try:
                self.insert(order)
            except DuplicateIdError:
                log.warning("Insert for existing order id=%r; overwriting", event.id)
                self._index_drop(event.id)
                self._index_add(order, next(self._seq))
        elif event.op is OrderOp.UPDATE:
            try:
                self.update(event.id, event.fields)
            except UnknownIdError:
                log.warning("Update for unknown order id=%r; ignoring", event.id)
        elif event.op is OrderOp.DELETE:
            self.delete(event.id)
        else:
            raise DecodeError(f"unsupported order op {event.op!r}")

    def apply_batch(self, batch: UpdateBatch) -> int:
        applied = 0
        for event in batch.events:
            if not isinstance(event, OrderEvent):
                raise TypeError(f"id-keyed book cannot apply {type(event).__name__}")
            self.apply_event(event)
            applied += 1
        return applied

    def iter_side(self, side: Side):
        for order_id in self._index[side].values():
            yield self._orders[order_id]

    def project(self, side: Side, n: int) -> Tuple[PriceLevel, ...]:
        if n <= 0:
            return ()
        return tuple(PriceLevel(price=o.price, size=o.size) for o in islice(self.iter_side(side), n))

    def projection(self, n: int) -> ProjectedBook:
        return ProjectedBook(bids=self.project(Side.BID, n), asks=self.project(Side.ASK, n))
