import logging
import time

import requests

from depth_core.errors import DecodeError, SnapshotFetchError
from depth_core.types import PriceSnapshot
from depth_recorder.settings import INSECURE_TLS, _env_float, _env_int

log = logging.getLogger("depth_recorder.rest")

SNAPSHOT_TIMEOUT_S = _env_float("SNAPSHOT_TIMEOUT_S", 10.0)
SNAPSHOT_RETRY_MAX = _env_int("SNAPSHOT_RETRY_MAX", 3)
SNAPSHOT_RETRY_BACKOFF_S = _env_float("SNAPSHOT_RETRY_BACKOFF_S", 0.5)
SNAPSHOT_RETRY_BACKOFF_MAX_S = _env_float("SNAPSHOT_RETRY_BACKOFF_MAX_S", 5.0)
SNAPSHOT_LIMIT = _env_int("SNAPSHOT_LIMIT", 1000)


class RestSnapshotClient:
    def __init__(self, timeout_s: float | None = None, session: requests.Session | None = None) -> None:
        self.timeout_s = SNAPSHOT_TIMEOUT_S if timeout_s is None else float(timeout_s)
        self.session = session or requests.Session()
        if INSECURE_TLS:
            self.session.verify = False

    def get_json(self, url: str, params: dict | None = None):
        resp = self.session.get(url, params=params, timeout=self.timeout_s)
        resp.raise_for_status()
        return resp.json()

    def post_json(self, url: str, payload: dict | None = None):
        resp = self.session.post(url, json=payload, timeout=self.timeout_s)
        resp.raise_for_status()
        return resp.json()


def _call_with_retry(fn):
    attempts = max(1, int(SNAPSHOT_RETRY_MAX))
    backoff_s = max(0.0, float(SNAPSHOT_RETRY_BACKOFF_S))
    backoff_max_s = max(backoff_s, float(SNAPSHOT_RETRY_BACKOFF_MAX_S))
    delay = backoff_s
    last_exc = None
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except (requests.RequestException, ValueError) as exc:
            last_exc = exc
            log.warning("Snapshot request attempt %d/%d failed: %s", attempt, attempts, exc)
            if attempt >= attempts:
                break
            if delay > 0:
                time.sleep(delay)
                delay = min(backoff_max_s, delay * 2)
    raise last_exc


def fetch_snapshot(adapter, client: RestSnapshotClient, symbol: str, limit: int = SNAPSHOT_LIMIT) -> PriceSnapshot:
    """Fetch and parse a REST snapshot for a rest-snapshot venue.

    Any transport failure after retries, or an unusable payload, becomes
    SnapshotFetchError so the caller can halt just this stream.
    """
    if client is None:
        raise SnapshotFetchError(f"{adapter.platform}: REST snapshot requires a client")
    url, params = adapter.snapshot_request(symbol, limit)
    try:
        payload = _call_with_retry(lambda: client.get_json(url, params=params))
    except (requests.RequestException, ValueError) as exc:
        raise SnapshotFetchError(f"{adapter.platform}: REST snapshot failed: {exc}") from exc
    try:
        snapshot = adapter.parse_snapshot(payload)
    except DecodeError as exc:
        raise SnapshotFetchError(f"{adapter.platform}: invalid snapshot payload: {exc}") from exc
    log.info(
        "%s snapshot fetched bids=%d asks=%d (%s)",
        adapter.platform,
        len(snapshot.bids),
        len(snapshot.asks),
        url,
    )
    return snapshot
