from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from depth_core.errors import SinkWriteError
from depth_core.types import PersistenceRow
from depth_recorder.settings import SINK_QUEUE_SIZE, SINK_TIMEOUT_S

log = logging.getLogger("depth_recorder.sink_writer")


class OverflowPolicy(str, Enum):
    DROP_OLDEST = "drop_oldest"
    BLOCK = "block"


@dataclass
class WriterStats:
    submitted: int = 0
    written: int = 0
    failed: int = 0
    dropped: int = 0


_STOP = object()


class SinkWriter:
    """Bounded, ordered hand-off from one stream to its sink.

    Rows are queued without waiting on the sink. A single drain task feeds
    a single-thread executor, so writes land in submission order even when
    one of them times out. A failed write is logged and dropped; it never
    reaches back into the book.
    """

    def __init__(
        self,
        sink,
        name: str = "sink",
        queue_size: int = SINK_QUEUE_SIZE,
        timeout_s: float = SINK_TIMEOUT_S,
        overflow_policy: OverflowPolicy | str = OverflowPolicy.DROP_OLDEST,
    ) -> None:
        self.sink = sink
        self.name = name
        self.queue_size = max(1, int(queue_size))
        self.timeout_s = max(0.001, float(timeout_s))
        self.overflow_policy = OverflowPolicy(overflow_policy)
        self.stats = WriterStats()
        self._queue: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._closing = False

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    async def start(self) -> None:
        if self._task is not None:
            return
        self._queue = asyncio.Queue(maxsize=self.queue_size)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"sink-{self.name}")
        self._task = asyncio.create_task(self._drain())

    async def submit(self, rows: Sequence[PersistenceRow]) -> bool:
        if not rows:
            return False
        if self._closing or self._queue is None:
            log.warning("[%s] writer not accepting rows (closing=%s); dropping %d rows", self.name, self._closing, len(rows))
            self.stats.dropped += 1
            return False

        self.stats.submitted += 1
        if self.overflow_policy is OverflowPolicy.BLOCK:
            await self._queue.put(tuple(rows))
            return True

        try:
            self._queue.put_nowait(tuple(rows))
        except asyncio.QueueFull:
            oldest = self._queue.get_nowait()
            self._queue.task_done()
            self.stats.dropped += 1
            log.warning(
                "[%s] sink queue full (%d); dropped oldest write ts=%s",
                self.name,
                self.queue_size,
                oldest[0].timestamp.isoformat() if oldest else None,
            )
            self._queue.put_nowait(tuple(rows))
        return True

    async def _insert(self, rows) -> None:
        loop = asyncio.get_running_loop()
        try:
            await asyncio.wait_for(
                loop.run_in_executor(self._executor, self.sink.insert, rows),
                timeout=self.timeout_s,
            )
        except asyncio.TimeoutError as exc:
            raise SinkWriteError(f"sink insert timed out after {self.timeout_s:.1f}s") from exc
        except Exception as exc:
            raise SinkWriteError(f"sink insert failed: {exc}") from exc

    async def _drain(self) -> None:
        assert self._queue is not None
        while True:
            rows = await self._queue.get()
            try:
                if rows is _STOP:
                    return
                try:
                    await self._insert(rows)
                    self.stats.written += 1
                except SinkWriteError as exc:
                    self.stats.failed += 1
                    log.warning("[%s] %s; dropping %d rows", self.name, exc, len(rows))
            finally:
                self._queue.task_done()

    async def close(self) -> None:
        """Stop intake, let queued and in-flight writes finish or fail.

        The sink itself may be shared between writers and stays open.
        """
        if self._task is None:
            return
        self._closing = True
        assert self._queue is not None
        await self._queue.put(_STOP)
        await self._task
        self._task = None
        if self._executor is not None:
            await asyncio.to_thread(self._executor.shutdown, True)
            self._executor = None
        log.info(
            "[%s] writer closed submitted=%d written=%d failed=%d dropped=%d",
            self.name,
            self.stats.submitted,
            self.stats.written,
            self.stats.failed,
            self.stats.dropped,
        )
