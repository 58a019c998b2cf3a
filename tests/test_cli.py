from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from market_adaptation.cli import EXIT_MISSING_INPUT, main

from conftest import OSCILLATING, UPTREND, make_snapshot


@pytest.fixture
def files(tmp_path: Path, trend_strategy_spec):
    snapshot = tmp_path / "snapshot.json"
    snapshot.write_text(json.dumps(make_snapshot(UPTREND)), encoding="utf-8")

    snapshots = tmp_path / "snapshots.json"
    snapshots.write_text(
        json.dumps([make_snapshot(UPTREND), make_snapshot(OSCILLATING)]), encoding="utf-8"
    )

    strategies = tmp_path / "strategies.yaml"
    strategies.write_text(yaml.safe_dump({"strategies": [trend_strategy_spec]}), encoding="utf-8")

    metrics = tmp_path / "metrics.yaml"
    metrics.write_text(
        yaml.safe_dump({trend_strategy_spec["name"]: {"sharpe_ratio": 0.4}}), encoding="utf-8"
    )
    return {"snapshot": snapshot, "snapshots": snapshots, "strategies": strategies, "metrics": metrics}


def test_detect_prints_patterns(files, capsys):
    assert main(["detect", "--snapshot", str(files["snapshot"])]) == 0
    out = json.loads(capsys.readouterr().out)
    assert [p["type"] for p in out] == ["trend"]
    assert out[0]["expected_outcome"]["direction"] == "up"


def test_run_prints_strategies_history_and_summary(files, capsys):
    code = main([
        "run",
        "--snapshots", str(files["snapshots"]),
        "--strategies", str(files["strategies"]),
        "--metrics", str(files["metrics"]),
    ])
    assert code == 0
    out = json.loads(capsys.readouterr().out)
    assert len(out["strategies"]) == 1
    # metrics consumed on the first snapshot, so the trend only triggers the underperformance path
    assert [r["trigger_kind"] for r in out["history"]] == ["performance"]
    assert out["summary"]["total_adaptations"] == 1
    assert out["strategies"][0]["adaptation_count"] == 1


def test_run_history_limit(files, capsys):
    code = main([
        "run",
        "--snapshots", str(files["snapshots"]),
        "--strategies", str(files["strategies"]),
        "--history", "1",
    ])
    assert code == 0
    out = json.loads(capsys.readouterr().out)
    assert len(out["history"]) == 1
    assert out["history"][0]["trigger_kind"] == "pattern"


def test_replay_prints_fingerprint(files, capsys):
    assert main(["replay", "--snapshots", str(files["snapshots"])]) == 0
    first = json.loads(capsys.readouterr().out)
    assert main(["replay", "--snapshots", str(files["snapshots"])]) == 0
    second = json.loads(capsys.readouterr().out)
    assert first["output_fingerprint"] == second["output_fingerprint"]
    assert first["snapshots_in"] == 2


def test_show_config(capsys):
    assert main(["show-config"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["controller"]["confidence_threshold"] == 0.6
    assert len(out["config_hash"]) == 64


def test_missing_input_exits_2(tmp_path: Path, capsys):
    code = main(["detect", "--snapshot", str(tmp_path / "nope.json")])
    assert code == EXIT_MISSING_INPUT == 2
    assert "not found" in capsys.readouterr().err


def test_invalid_config_exits_nonzero(tmp_path: Path, capsys):
    bad = tmp_path / "bad.yaml"
    bad.write_text("controller:\n  adaptation_step: 5\n", encoding="utf-8")
    assert main(["--config", str(bad), "show-config"]) == 1
    assert "invalid config" in capsys.readouterr().err
