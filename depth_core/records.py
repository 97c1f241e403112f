from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterator, Tuple

from .types import PersistenceRow, PriceLevel, ProjectedBook, Side

RowKey = Tuple[int, str, object, object]


def ms_timestamp(recv_ms: int | None = None) -> datetime:
    """UTC instant at millisecond precision; defaults to now."""
    if recv_ms is None:
        now = datetime.now(timezone.utc)
        return now.replace(microsecond=(now.microsecond // 1000) * 1000)
    seconds, millis = divmod(int(recv_ms), 1000)
    return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(microsecond=millis * 1000)


def _iter_levels(book: ProjectedBook) -> Iterator[Tuple[int, Side, PriceLevel]]:
    for side in (Side.BID, Side.ASK):
        for idx, level in enumerate(book.side(side), start=1):
            yield idx, side, level


def projection_key(book: ProjectedBook) -> Tuple[RowKey, ...]:
    return tuple((idx, side.value, level.price, level.size) for idx, side, level in _iter_levels(book))


def build_rows(book: ProjectedBook, timestamp: datetime, platform: str) -> Tuple[PersistenceRow, ...]:
    """Flatten a projected book into bid rows then ask rows, levels 1-indexed."""
    return tuple(
        PersistenceRow(
            timestamp=timestamp,
            platform=platform,
            level=idx,
            side=side,
            price=level.price,
            volume=level.size,
        )
        for idx, side, level in _iter_levels(book)
    )
