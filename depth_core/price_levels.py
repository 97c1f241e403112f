from __future__ import annotations

from dataclasses import dataclass, field
from itertools import islice
from typing import Iterable, Iterator, Optional, Tuple

from sortedcontainers import SortedDict

from .types import (
    LevelOp,
    LevelUpdate,
    PriceLevel,
    PriceSnapshot,
    ProjectedBook,
    Side,
    UpdateBatch,
    to_decimal,
)


def _coerce_cap(value) -> Optional[int]:
    if value is None:
        return None
    cap = int(value)
    if cap <= 0:
        raise ValueError(f"depth_cap must be positive (got {value!r})")
    return cap


@dataclass
class PriceLevelSet:
    """One side of an L2 book keyed by Decimal price.

    Asks iterate ascending and bids descending, so the best level is always
    first. With a `depth_cap` the least favourable level is evicted once the
    side grows past the cap.
    """

    side: Side
    depth_cap: Optional[int] = None
    levels: SortedDict = field(default_factory=SortedDict)

    def __post_init__(self) -> None:
        self.depth_cap = _coerce_cap(self.depth_cap)

    def __len__(self) -> int:
        return len(self.levels)

    def __contains__(self, price) -> bool:
        return to_decimal(price) in self.levels

    def get(self, price):
        return self.levels.get(to_decimal(price))

    def _evict_worst(self) -> None:
        # asks: highest price is worst; bids: lowest price is worst
        if self.side is Side.ASK:
            self.levels.popitem(-1)
        else:
            self.levels.popitem(0)

    def _trim(self) -> None:
        if self.depth_cap is None:
            return
        while len(self.levels) > self.depth_cap:
            self._evict_worst()

    def apply_snapshot(self, levels: Iterable[PriceLevel]) -> None:
        self.levels.clear()
        for level in levels:
            size = to_decimal(level.size)
            if size == 0:
                continue
            self.levels[to_decimal(level.price)] = size
        self._trim()

    def apply_update(self, price, size, op: LevelOp = LevelOp.UPSERT) -> None:
        p = to_decimal(price)
        s = to_decimal(size)
        if op is LevelOp.DELETE or s == 0:
            self.levels.pop(p, None)
            return
        self.levels[p] = s
        self._trim()

    def iter_levels(self) -> Iterator[PriceLevel]:
        items = self.levels.items()
        if self.side is Side.BID:
            items = reversed(items)
        for price, size in items:
            yield PriceLevel(price=price, size=size)

    def project(self, n: int) -> Tuple[PriceLevel, ...]:
        if n <= 0:
            return ()
        return tuple(islice(self.iter_levels(), n))

    def best(self) -> Optional[PriceLevel]:
        top = self.project(1)
        return top[0] if top else None


class PriceBook:
    """Bid and ask PriceLevelSets behind the common book surface."""

    def __init__(self, depth_cap: Optional[int] = None) -> None:
        self.bids = PriceLevelSet(Side.BID, depth_cap=depth_cap)
        self.asks = PriceLevelSet(Side.ASK, depth_cap=depth_cap)

    def _side(self, side: Side) -> PriceLevelSet:
        return self.bids if side is Side.BID else self.asks

    def apply_snapshot(self, snapshot: PriceSnapshot) -> None:
        if not isinstance(snapshot, PriceSnapshot):
            raise TypeError(f"price-keyed book cannot adopt {type(snapshot).__name__}")
        self.bids.apply_snapshot(snapshot.bids)
        self.asks.apply_snapshot(snapshot.asks)

    def apply_update(self, update: LevelUpdate) -> None:
        self._side(update.side).apply_update(update.price, update.size, update.op)

    def apply_batch(self, batch: UpdateBatch) -> int:
        applied = 0
        for update in batch.events:
            if not isinstance(update, LevelUpdate):
                raise TypeError(f"price-keyed book cannot apply {type(update).__name__}")
            self.apply_update(update)
            applied += 1
        return applied

    def project(self, side: Side, n: int) -> Tuple[PriceLevel, ...]:
        return self._side(side).project(n)

    def projection(self, n: int) -> ProjectedBook:
        return ProjectedBook(bids=self.bids.project(n), asks=self.asks.project(n))

    def __len__(self) -> int:
        return len(self.bids) + len(self.asks)
