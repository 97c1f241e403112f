from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import time
from typing import Callable, List, Optional, Sequence

from depth_core.errors import SnapshotFetchError
from depth_recorder import settings
from depth_recorder.pipeline import StreamPipeline
from depth_recorder.rest import RestSnapshotClient, fetch_snapshot
from depth_recorder.settings import StreamConfig
from depth_recorder.sink_writer import SinkWriter
from depth_recorder.venues import VenueAdapter, get_adapter
from depth_recorder.ws_stream import WSStream


class StreamRunner:
    """Owns one venue stream: its socket, its book and its sink writer.

    Messages are processed strictly one after another; only the snapshot
    fetch and the sink write leave the event loop.
    """

    def __init__(
        self,
        cfg: StreamConfig,
        sink,
        adapter: Optional[VenueAdapter] = None,
        rest_client: Optional[RestSnapshotClient] = None,
        ws_factory: Callable[..., WSStream] = WSStream,
        heartbeat_s: float = settings.HEARTBEAT_SEC,
    ) -> None:
        self.cfg = cfg
        self.adapter = adapter or get_adapter(cfg.venue)
        self.pipeline = StreamPipeline.from_config(cfg, adapter=self.adapter)
        self.rest_client = rest_client
        if self.rest_client is None and self.adapter.snapshot_source == "rest":
            self.rest_client = RestSnapshotClient()
        self.writer = SinkWriter(
            sink,
            name=f"{self.adapter.name}:{cfg.symbol}",
            overflow_policy=cfg.overflow_policy,
        )
        self.ws_factory = ws_factory
        self.heartbeat_s = float(heartbeat_s)
        self.stream: Optional[WSStream] = None
        self.open_count = 0
        self.fatal: Optional[BaseException] = None
        self._snapshot_task: Optional[asyncio.Task] = None
        self._closed = False
        self.log = logging.getLogger(f"depth_recorder.stream.{self.adapter.name}")

    @property
    def name(self) -> str:
        return f"{self.adapter.platform}:{self.cfg.symbol}"

    async def on_message(self, raw, recv_ms: int) -> None:
        if self._closed:
            return
        rows = self.pipeline.handle_message(raw, recv_ms)
        if rows:
            await self.writer.submit(rows)
        if self.pipeline.needs_resync:
            self._request_snapshot("resync")

    def on_open(self) -> None:
        self.open_count += 1
        if self.open_count > 1:
            # frames were missed while disconnected
            self.log.warning("%s reconnected (open #%d); resynchronizing", self.name, self.open_count)
            self.pipeline.reset_for_resync()
        else:
            self.pipeline.engine.begin()
        if self.adapter.snapshot_source == "rest":
            self._request_snapshot("initial" if self.open_count == 1 else "reconnect")

    def on_status(self, typ: str, details: dict) -> None:
        level = logging.WARNING if typ in ("ws_close", "ws_ping_timeout", "ws_run_exception") else logging.INFO
        self.log.log(level, "%s %s %s", self.name, typ, details)

    def _request_snapshot(self, tag: str) -> None:
        if self._snapshot_task is not None and not self._snapshot_task.done():
            # the in-flight fetch covers this request
            self.pipeline.needs_resync = False
            return
        if tag == "resync":
            self.log.warning("%s resync requested; refetching snapshot", self.name)
            self.pipeline.reset_for_resync()
        self._snapshot_task = asyncio.create_task(self._load_snapshot(tag))

    async def _load_snapshot(self, tag: str) -> None:
        try:
            snapshot = await asyncio.to_thread(
                fetch_snapshot, self.adapter, self.rest_client, self.cfg.symbol
            )
        except SnapshotFetchError as exc:
            self.log.error("%s snapshot (%s) unavailable, halting stream: %s", self.name, tag, exc)
            self.fatal = exc
            self.close()
            return
        if self._closed:
            return
        rows = self.pipeline.adopt_snapshot(snapshot, int(time.time() * 1000))
        if rows:
            await self.writer.submit(rows)

    async def _heartbeat(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_s)
            s = self.pipeline.stats
            w = self.writer.stats
            self.log.info(
                "HEARTBEAT %s state=%s msgs=%d applied=%d buffered=%d snapshots=%d emitted=%d "
                "suppressed=%d decode_errors=%d writes=%d failed_writes=%d dropped_writes=%d pending=%d",
                self.name,
                self.pipeline.engine.state.value,
                s.messages,
                s.applied,
                s.buffered,
                s.snapshots,
                s.emitted,
                s.suppressed,
                s.decode_errors,
                w.written,
                w.failed,
                w.dropped,
                self.writer.pending,
            )

    async def run(self) -> None:
        await self.writer.start()
        heartbeat = asyncio.create_task(self._heartbeat())
        try:
            url = await asyncio.to_thread(self.adapter.resolve_ws_url, self.cfg.symbol, self.rest_client)
            self.stream = self.ws_factory(
                url,
                on_message=self.on_message,
                on_open=self.on_open,
                on_status=self.on_status,
                subscribe_messages=self.adapter.subscribe_messages(self.cfg.symbol, self.adapter.max_depth),
                insecure_tls=settings.INSECURE_TLS,
                ping_interval_s=settings.WS_PING_INTERVAL_S,
                ping_timeout_s=settings.WS_PING_TIMEOUT_S,
                reconnect_backoff_s=settings.WS_RECONNECT_BACKOFF_S,
                reconnect_backoff_max_s=settings.WS_RECONNECT_BACKOFF_MAX_S,
            )
            if self._closed:
                return
            self.log.info("%s connecting %s levels=%d base_volume=%s dedup=%s",
                          self.name, url, self.cfg.levels, self.cfg.base_volume, self.cfg.dedup)
            await self.stream.run_async()
        finally:
            self._closed = True
            heartbeat.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await heartbeat
            if self._snapshot_task is not None and not self._snapshot_task.done():
                self._snapshot_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._snapshot_task
            await self.writer.close()
        if self.fatal is not None:
            raise self.fatal

    def close(self) -> None:
        self._closed = True
        if self.stream is not None:
            self.stream.close()


async def run_streams(
    configs: Sequence[StreamConfig],
    sink,
    runner_factory: Callable[..., StreamRunner] = StreamRunner,
) -> List[Optional[BaseException]]:
    """Run every stream independently; one stream failing leaves the others running.

    All streams share `sink`, which is closed once every stream has stopped.
    """
    log = logging.getLogger("depth_recorder.stream")
    runners = [runner_factory(cfg, sink) for cfg in configs]

    def _stop_all() -> None:
        log.info("Stop requested; closing %d stream(s)", len(runners))
        for r in runners:
            r.close()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
            loop.add_signal_handler(sig, _stop_all)

    try:
        results = await asyncio.gather(*(r.run() for r in runners), return_exceptions=True)
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
                loop.remove_signal_handler(sig)
        close = getattr(sink, "close", None)
        if close is not None:
            try:
                close()
            except Exception:
                log.exception("Failed to close sink")

    outcomes: List[Optional[BaseException]] = []
    for runner, result in zip(runners, results):
        if isinstance(result, BaseException):
            log.error("Stream %s stopped with %s: %s", runner.name, type(result).__name__, result)
            outcomes.append(result)
        else:
            log.info("Stream %s stopped", runner.name)
            outcomes.append(None)
    return outcomes
