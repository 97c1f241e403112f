from __future__ import annotations

import csv
import gzip
import json
import logging
import threading
from pathlib import Path
from typing import Any, Mapping, Protocol, Sequence

import requests

from depth_core.types import PersistenceRow

log = logging.getLogger("depth_recorder.sinks")

COLUMNS = ["timestamp", "platform", "order_level", "order_type", "price", "volume"]


def format_timestamp(ts) -> str:
    # DateTime64(3) literal
    return ts.strftime("%Y-%m-%d %H:%M:%S.") + f"{ts.microsecond // 1000:03d}"


def _row_values(row: PersistenceRow) -> dict:
    return {
        "timestamp": format_timestamp(row.timestamp),
        "platform": row.platform,
        "order_level": row.level,
        "order_type": row.side.value,
        "price": str(row.price),
        "volume": str(row.volume),
    }


class Sink(Protocol):
    def insert(self, rows: Sequence[PersistenceRow]) -> None:
        """Persist rows; raise on failure."""

    def close(self) -> None:
        ...


def _is_empty_text_file(path: Path) -> bool:
    if not path.exists():
        return True
    if path.suffix == ".gz":
        with gzip.open(path, "rt", encoding="utf-8") as f:
            return f.read(1) == ""
    return path.stat().st_size == 0


class CsvSink:
    """Append-only CSV (optionally gzip) sink, header written once per file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._header_written = not _is_empty_text_file(self.path)

    def _open(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if self.path.suffix == ".gz":
            return gzip.open(self.path, "at", encoding="utf-8", newline="")
        return self.path.open("a", newline="", encoding="utf-8")

    def insert(self, rows: Sequence[PersistenceRow]) -> None:
        if not rows:
            return
        with self._lock, self._open() as f:
            w = csv.DictWriter(f, fieldnames=COLUMNS)
            if not self._header_written:
                w.writeheader()
                self._header_written = True
            for row in rows:
                w.writerow(_row_values(row))

    def close(self) -> None:
        return None


class ClickHouseHttpSink:
    """INSERT ... FORMAT JSONEachRow over the ClickHouse HTTP interface."""

    def __init__(
        self,
        url: str,
        table: str,
        user: str | None = None,
        password: str | None = None,
        timeout_s: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self.url = url.rstrip("/") + "/"
        self.table = table
        self.timeout_s = float(timeout_s)
        self.session = session or requests.Session()
        if user:
            self.session.auth = (user, password or "")

    def insert(self, rows: Sequence[PersistenceRow]) -> None:
        if not rows:
            return
        body = "\n".join(json.dumps(_row_values(row), ensure_ascii=False) for row in rows)
        resp = self.session.post(
            self.url,
            params={"query": f"INSERT INTO {self.table} ({', '.join(COLUMNS)}) FORMAT JSONEachRow"},
            data=body.encode("utf-8"),
            timeout=self.timeout_s,
        )
        resp.raise_for_status()

    def close(self) -> None:
        self.session.close()


def make_sink(cfg: Mapping[str, Any]) -> Sink:
    kind = str(cfg.get("kind", "csv")).strip().lower()
    if kind == "csv":
        return CsvSink(cfg.get("path", "data/orderbook.csv.gz"))
    if kind == "clickhouse":
        if not cfg.get("url") or not cfg.get("table"):
            raise ValueError("clickhouse sink requires url and table")
        return ClickHouseHttpSink(
            url=str(cfg["url"]),
            table=str(cfg["table"]),
            user=cfg.get("user"),
            password=cfg.get("password"),
            timeout_s=float(cfg.get("timeout_s", 10.0)),
        )
    raise ValueError(f"Unknown sink kind {kind!r}. Available: clickhouse, csv")
