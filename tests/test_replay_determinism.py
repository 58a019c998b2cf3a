from __future__ import annotations

from dataclasses import replace

from market_adaptation.core.config import AdaptationConfig, ClassifierConfig
from market_adaptation.log.replay import replay_snapshots

from conftest import DOWNTREND, OSCILLATING, SPIKE, UPTREND, make_snapshot


def snapshots():
    return [make_snapshot(p) for p in (UPTREND, SPIKE, OSCILLATING, DOWNTREND, [1.0])]


def test_determinism():
    r1 = replay_snapshots(snapshots())
    r2 = replay_snapshots(snapshots())
    assert r1.output_fingerprint == r2.output_fingerprint
    assert r1.snapshots_in == 5
    assert r1.patterns_out == r2.patterns_out >= 4
    assert r1.notes["patterns_by_type"]["trend"] == 2


def test_fingerprint_tracks_input_and_config():
    base = replay_snapshots(snapshots())
    fewer = replay_snapshots(snapshots()[:2])
    assert fewer.output_fingerprint != base.output_fingerprint

    calm = replace(AdaptationConfig.default(), classifier=ClassifierConfig(volatility_multiplier=50.0))
    res = replay_snapshots(snapshots(), calm)
    assert res.config_hash != base.config_hash
    assert "volatility_spike" in base.notes["patterns_by_type"]
    assert "volatility_spike" not in res.notes["patterns_by_type"]
    assert res.output_fingerprint != base.output_fingerprint


def test_empty_replay():
    res = replay_snapshots([])
    assert res.snapshots_in == 0
    assert res.patterns_out == 0
