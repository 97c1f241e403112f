"""Order-book depth recorder.

Runs one stream per configured venue/pair and persists the top-N book
rows to the configured sink.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Optional, Sequence

from depth_recorder.logging_config import setup_logging
from depth_recorder.settings import load_config
from depth_recorder.sinks import make_sink
from depth_recorder.stream import run_streams

log = logging.getLogger("depth_recorder.recorder")


def run_recorder(config_path: Optional[str] = None) -> int:
    cfg = load_config(config_path)
    log_path = setup_logging(cfg.log_level, component="recorder")
    log.info("Logging to %s", log_path)
    for stream in cfg.streams:
        log.info(
            "Configured %s %s levels=%d base_volume=%s dedup=%s resync=%s overflow=%s",
            stream.venue,
            stream.symbol,
            stream.levels,
            stream.base_volume,
            stream.dedup,
            stream.resync_policy.value,
            stream.overflow_policy,
        )

    sink = make_sink(cfg.sink)
    outcomes = asyncio.run(run_streams(cfg.streams, sink))
    failed = sum(1 for o in outcomes if o is not None)
    log.info("Recorder stopped. streams=%d failed=%d", len(outcomes), failed)
    return 1 if failed else 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Record top-N order book depth from crypto venues")
    parser.add_argument("--config", default=None, help="Path to streams YAML (default: $CONFIG_PATH or config/streams.yaml)")
    args = parser.parse_args(argv)

    # cron/docker may discard stderr; keep the traceback in the log file
    try:
        return run_recorder(args.config)
    except Exception:
        log.exception("Recorder crashed")
        raise


if __name__ == "__main__":
    raise SystemExit(main())
