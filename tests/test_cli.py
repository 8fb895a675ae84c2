import argparse
import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

from livestats import DecayConfig, DecayConfigError, LiveStats, StatsRegistry
from livestats.cli import build_decay


def _run(*args, stdin=None, timeout=60):
    return subprocess.run(
        [sys.executable, "-m", "livestats.cli", *args],
        input=stdin,
        capture_output=True,
        text=True,
        timeout=timeout,
        # Wide enough that rich never folds the table headers
        env=dict(os.environ, COLUMNS="200"),
    )


def _write_observations(path: Path, n: int = 200) -> None:
    lines = ["# latency samples\n"]
    for i in range(n):
        lines.append(f"{i}\n")
        lines.append(f"db {i * 2}\n")
        if i % 50 == 0:
            lines.append('{"key": "rpc", "nanos": 1000}\n')
    lines.append("garbage line here\n")
    path.write_text("".join(lines), encoding="utf-8")


def test_summarize_json(tmp_path):
    src = tmp_path / "obs.txt"
    _write_observations(src)
    out = tmp_path / "summary.json"
    p = _run("summarize", str(src), "--quantiles", "0.5", "0.9", "--json", str(out))
    assert p.returncode == 0, p.stderr
    assert "skipped malformed line" in p.stderr
    data = json.loads(out.read_text())
    by_name = {s["name"]: s for s in data}
    assert set(by_name) == {"db", "rpc", "value"}
    assert by_name["value"]["n"] == 200
    assert by_name["value"]["min"] == 0.0
    assert by_name["value"]["max"] == 199.0
    assert by_name["rpc"]["n"] == 4
    assert set(by_name["db"]["quantiles"]) == {"0.5", "0.9"}


def test_summarize_table_from_stdin():
    p = _run("summarize", "-", "--no-color", stdin="1\n2\n3\nlat 5\n")
    assert p.returncode == 0, p.stderr
    assert "value" in p.stdout
    assert "lat" in p.stdout
    assert "p50" in p.stdout


def test_summarize_state_round_trip(tmp_path):
    first = tmp_path / "a.txt"
    first.write_text("".join(f"{i}\n" for i in range(100)), encoding="utf-8")
    second = tmp_path / "b.txt"
    second.write_text("".join(f"{i}\n" for i in range(100, 150)), encoding="utf-8")
    state = tmp_path / "state" / "stats.json"

    p = _run("summarize", str(first), "--state-out", str(state), "--json", str(tmp_path / "s1.json"))
    assert p.returncode == 0, p.stderr
    assert state.exists()
    reg = StatsRegistry()
    reg.restore(json.loads(state.read_text()))
    assert reg.live("value").num() == 100

    out = tmp_path / "s2.json"
    p = _run("summarize", str(second), "--state-in", str(state), "--json", str(out))
    assert p.returncode == 0, p.stderr
    (value,) = json.loads(out.read_text())
    assert value["n"] == 150
    assert value["max"] == 149.0


def test_summarize_with_count_decay(tmp_path):
    src = tmp_path / "obs.txt"
    src.write_text("".join(f"{i}\n" for i in range(100)), encoding="utf-8")
    out = tmp_path / "s.json"
    p = _run("summarize", str(src), "--decay", "0.5", "--decay-every", "10", "--json", str(out))
    assert p.returncode == 0, p.stderr
    (value,) = json.loads(out.read_text())
    assert value["n"] == 100
    assert value["decays"] == 9
    assert value["decayed_n"] < 100


def test_summarize_rejects_bad_decay(tmp_path):
    src = tmp_path / "obs.txt"
    src.write_text("1\n", encoding="utf-8")
    p = _run("summarize", str(src), "--decay", "1.5")
    assert p.returncode == 2
    assert "invalid decay settings" in p.stderr


def test_summarize_missing_file(tmp_path):
    p = _run("summarize", str(tmp_path / "nope.txt"))
    assert p.returncode == 2
    assert "file not found" in p.stderr


def test_tail_no_follow(tmp_path):
    src = tmp_path / "app.log"
    src.write_text("".join(f"svc {i}\n" for i in range(1, 11)), encoding="utf-8")
    out = tmp_path / "tail.json"
    p = _run("tail", str(src), "--no-follow", "--interval", "0", "--json", str(out))
    assert p.returncode == 0, p.stderr
    (svc,) = json.loads(out.read_text())
    assert svc["name"] == "svc"
    assert svc["n"] == 10
    assert svc["mean"] == 5.5


def test_bench_smoke():
    p = _run("bench", "--values", "2000", "--threads", "2", "--readers", "1")
    assert p.returncode == 0, p.stderr
    assert "values/sec" in p.stdout
    assert "Recorded 2000 values" in p.stdout


def test_saved_state_loads_as_live_stats(tmp_path):
    src = tmp_path / "obs.txt"
    src.write_text("4\n8\n", encoding="utf-8")
    state = tmp_path / "state.json"
    p = _run("summarize", str(src), "--state-out", str(state), "--json", str(tmp_path / "s.json"))
    assert p.returncode == 0, p.stderr
    snap = json.loads(state.read_text())
    live = LiveStats.from_snapshot(snap["stats"]["value"])
    assert live.mean() == 6.0


def test_summarize_rejects_period_and_count_together(tmp_path):
    src = tmp_path / "obs.txt"
    src.write_text("1\n", encoding="utf-8")
    p = _run("summarize", str(src), "--decay", "0.5", "--decay-period", "1", "--decay-every", "10")
    assert p.returncode == 2
    assert "invalid decay settings" in p.stderr


def test_build_decay_rejects_period_and_count_together():
    args = argparse.Namespace(decay=0.5, decay_period=1.0, decay_every=10)
    with pytest.raises(DecayConfigError):
        build_decay(args)
    args = argparse.Namespace(decay=0.5, decay_period=None, decay_every=10)
    assert build_decay(args) == DecayConfig.counted(0.5, 10)
