from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Union

from .order_set import IdentifiedOrderSet
from .price_levels import PriceBook
from .types import (
    KeyScheme,
    OrderSnapshot,
    PriceSnapshot,
    ProjectedBook,
    Side,
    UpdateBatch,
)


class SyncState(str, Enum):
    UNINITIALIZED = "uninitialized"
    AWAITING_SNAPSHOT = "awaiting_snapshot"
    SYNCHRONIZED = "synchronized"


class ResyncPolicy(str, Enum):
    NONE = "none"
    REFETCH = "refetch"


@dataclass
class SyncResult:
    action: str  # "buffered" | "applied" | "synced" | "overflow"
    details: str = ""


Book = Union[PriceBook, IdentifiedOrderSet]


def make_book(key_scheme: KeyScheme, depth_cap: Optional[int] = None) -> Book:
    if key_scheme is KeyScheme.PRICE:
        return PriceBook(depth_cap=depth_cap)
    if key_scheme is KeyScheme.ID:
        return IdentifiedOrderSet()
    raise ValueError(f"unknown key scheme {key_scheme!r}")


class BookSyncEngine:
    """Per-stream state machine owning exactly one book.

    I/O-free. Key behaviors:
      - buffer update batches until a snapshot is adopted
      - replay the buffer in arrival order on adoption, skipping batches
        whose sequence the snapshot already covers
      - apply batches synchronously once synchronized
      - a later snapshot (venue resync signal) replaces the book in place
    """

    def __init__(
        self,
        key_scheme: KeyScheme,
        depth_cap: Optional[int] = None,
        max_buffer_size: Optional[int] = 200_000,
        resync_policy: ResyncPolicy = ResyncPolicy.NONE,
    ) -> None:
        self.key_scheme = KeyScheme(key_scheme)
        self.depth_cap = depth_cap
        self.book: Book = make_book(self.key_scheme, depth_cap)
        self.state = SyncState.UNINITIALIZED
        self.buffer: List[UpdateBatch] = []
        self.max_buffer_size = int(max_buffer_size) if max_buffer_size else None
        self.resync_policy = ResyncPolicy(resync_policy)
        self.snapshot_count = 0

    @property
    def synchronized(self) -> bool:
        return self.state is SyncState.SYNCHRONIZED

    def begin(self) -> None:
        if self.state is SyncState.UNINITIALIZED:
            self.state = SyncState.AWAITING_SNAPSHOT

    def reset_for_resync(self) -> None:
        """Drop the book and wait for a fresh snapshot."""
        self.book = make_book(self.key_scheme, self.depth_cap)
        self.buffer.clear()
        self.state = SyncState.AWAITING_SNAPSHOT

    def _check_snapshot(self, snapshot) -> None:
        expected = PriceSnapshot if self.key_scheme is KeyScheme.PRICE else OrderSnapshot
        if not isinstance(snapshot, expected):
            raise TypeError(
                f"{self.key_scheme.value}-keyed engine cannot adopt {type(snapshot).__name__}"
            )

    def adopt_snapshot(self, snapshot: PriceSnapshot | OrderSnapshot) -> SyncResult:
        self._check_snapshot(snapshot)
        self.book.apply_snapshot(snapshot)
        self.snapshot_count += 1
        was_synced = self.synchronized
        self.state = SyncState.SYNCHRONIZED

        replayed = 0
        stale = 0
        snap_seq = getattr(snapshot, "sequence", None)
        pending, self.buffer = self.buffer, []
        for batch in pending:
            # already reflected in the snapshot
            if snap_seq is not None and batch.sequence is not None and batch.sequence <= snap_seq:
                stale += 1
                continue
            self.book.apply_batch(batch)
            replayed += 1

        if was_synced:
            return SyncResult("synced", "resnapshot")
        if stale:
            return SyncResult("synced", f"replayed={replayed} stale={stale}")
        return SyncResult("synced", f"replayed={replayed}")

    def feed_batch(self, batch: UpdateBatch) -> SyncResult:
        if batch.key_scheme is not self.key_scheme:
            raise TypeError(
                f"{self.key_scheme.value}-keyed engine cannot apply {batch.key_scheme.value}-keyed batch"
            )
        if not self.synchronized:
            self.begin()
            self.buffer.append(batch)
            if self.max_buffer_size and len(self.buffer) > self.max_buffer_size:
                self.buffer.clear()
                return SyncResult("overflow", "buffer_overflow")
            return SyncResult("buffered", "no_snapshot")

        n = self.book.apply_batch(batch)
        return SyncResult("applied", f"events={n}")

    def project(self, n: int) -> ProjectedBook:
        if not self.synchronized:
            raise RuntimeError("book is not synchronized; no projection available")
        return self.book.projection(n)

    def project_side(self, side: Side, n: int):
        if not self.synchronized:
            raise RuntimeError("book is not synchronized; no projection available")
        return self.book.project(side, n)
