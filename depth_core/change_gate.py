from __future__ import annotations

from typing import Optional, Protocol, Tuple

from .records import RowKey, projection_key
from .types import ProjectedBook


class ChangeGate(Protocol):
    def should_emit(self, projection: ProjectedBook) -> bool:
        ...

    def reset(self) -> None:
        ...


class AlwaysEmit:
    def should_emit(self, projection: ProjectedBook) -> bool:
        return True

    def reset(self) -> None:
        return None


class DedupGate:
    """Suppress a projection identical to the last one actually emitted.

    Comparison is exact on (level, side, price, volume) of every row.
    """

    def __init__(self) -> None:
        self._last: Optional[Tuple[RowKey, ...]] = None
        self.suppressed = 0

    def should_emit(self, projection: ProjectedBook) -> bool:
        key = projection_key(projection)
        if self._last is not None and key == self._last:
            self.suppressed += 1
            return False
        self._last = key
        return True

    def reset(self) -> None:
        self._last = None


def make_change_gate(dedup: bool) -> ChangeGate:
    return DedupGate() if dedup else AlwaysEmit()
