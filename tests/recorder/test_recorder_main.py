from __future__ import annotations

import pytest

import depth_recorder.recorder as recorder_mod


def _write_config(tmp_path):
    path = tmp_path / "streams.yaml"
    path.write_text(
        "sink:\n"
        f"  kind: csv\n"
        f"  path: {tmp_path / 'out.csv'}\n"
        "streams:\n"
        "  - venue: kraken\n"
        "    symbol: XBT/USD\n"
        "    levels: 10\n"
        "    base_volume: true\n",
        encoding="utf-8",
    )
    return path


def test_main_runs_configured_streams(tmp_path, monkeypatch):
    seen = {}

    async def fake_run_streams(configs, sink):
        seen["venues"] = [c.venue for c in configs]
        seen["sink"] = type(sink).__name__
        return [None]

    monkeypatch.setattr(recorder_mod, "run_streams", fake_run_streams)
    monkeypatch.setattr(recorder_mod, "setup_logging", lambda *a, **k: tmp_path / "log.log")

    assert recorder_mod.main(["--config", str(_write_config(tmp_path))]) == 0
    assert seen == {"venues": ["kraken"], "sink": "CsvSink"}


def test_main_reports_failed_streams(tmp_path, monkeypatch):
    async def fake_run_streams(configs, sink):
        return [RuntimeError("halted")]

    monkeypatch.setattr(recorder_mod, "run_streams", fake_run_streams)
    monkeypatch.setattr(recorder_mod, "setup_logging", lambda *a, **k: tmp_path / "log.log")

    assert recorder_mod.main(["--config", str(_write_config(tmp_path))]) == 1


def test_main_surfaces_config_errors(tmp_path, monkeypatch):
    bad = tmp_path / "bad.yaml"
    bad.write_text("streams:\n  - venue: binance\n    symbol: BTCUSDT\n    levels: 500\n", encoding="utf-8")

    with pytest.raises(ValueError):
        recorder_mod.main(["--config", str(bad)])
