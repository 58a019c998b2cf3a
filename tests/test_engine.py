"""
End-to-end tests through MarketAdaptationEngine: detection feeding
adaptation, history queries, idempotence and concurrent access.
"""

from __future__ import annotations

import threading
from dataclasses import replace

import pytest

from market_adaptation.core.config import AdaptationConfig, ControllerConfig
from market_adaptation.core.errors import StrategyNotFoundError
from market_adaptation.core.types import PatternType, StrategyType, TriggerKind
from market_adaptation.engines.engine import MarketAdaptationEngine

from conftest import OSCILLATING, SPIKE, UPTREND, make_snapshot


def test_engine_loads_packaged_config_by_default():
    engine = MarketAdaptationEngine()
    assert engine.config.source is not None
    assert engine.config.config_hash == AdaptationConfig.default().config_hash


def test_detected_patterns_are_cached(engine, uptrend_snapshot):
    patterns = engine.detect_patterns(uptrend_snapshot)
    cached = engine.get_detected_patterns({"type": "trend"})
    assert [p.id for p in cached] == [p.id for p in patterns]
    assert engine.detect_patterns({"prices": [1.0]}) == []
    assert len(engine.get_detected_patterns()) == 1


def test_adapt_with_no_patterns_and_no_metrics_is_noop(engine, trend_strategy_spec):
    s = engine.add_adaptive_strategy(trend_strategy_spec)
    before = engine.get_adaptive_strategies()
    assert engine.adapt_strategies([]) == []
    assert engine.adapt_strategies() == []
    after = engine.get_adaptive_strategies()
    assert [x.current_parameters for x in after] == [x.current_parameters for x in before]
    assert engine.get_adaptation_history() == []
    assert engine.get_strategy(s.id).adaptation_count == 0


def test_uptrend_reinforces_trend_follower(engine, uptrend_snapshot, trend_strategy_spec):
    s = engine.add_adaptive_strategy(trend_strategy_spec)

    records = engine.process_market_data(uptrend_snapshot)

    assert len(records) == 1
    assert "pattern_aligned" in records[0].trigger_reason
    after = engine.get_strategy(s.id)
    assert 0.05 < after.current_parameters.position_size <= 0.1
    assert after.adaptation_count == 1
    assert engine.get_adaptation_history() == records


def test_metrics_underperformance_through_engine(engine, trend_strategy_spec):
    s = engine.add_adaptive_strategy(trend_strategy_spec)
    engine.set_performance_metrics(s.id, {"sharpe_ratio": 0.4, "total_trades": 20})

    records = engine.adapt_strategies([])

    assert len(records) == 1
    assert records[0].trigger_kind is TriggerKind.PERFORMANCE
    assert engine.get_strategy(s.id).current_parameters.position_size < 0.05
    assert engine.get_performance_metrics(s.id).total_trades == 20


def test_unknown_strategy_metrics_change_nothing(engine, trend_strategy_spec):
    engine.add_adaptive_strategy(trend_strategy_spec)
    before = engine.get_adaptive_strategies()
    with pytest.raises(StrategyNotFoundError):
        engine.set_performance_metrics("missing", {"sharpe_ratio": 0.1})
    with pytest.raises(StrategyNotFoundError):
        engine.update_strategy_status("missing", False)
    assert engine.get_adaptive_strategies()[0].current_parameters == before[0].current_parameters
    assert engine.get_adaptation_history() == []


def test_history_limit_semantics(engine, uptrend_snapshot, trend_strategy_spec):
    engine.add_adaptive_strategy(trend_strategy_spec)
    for _ in range(4):
        engine.process_market_data(uptrend_snapshot)
    full = engine.get_adaptation_history(0)
    assert len(full) == 4
    assert [r.timestamp for r in full] == sorted((r.timestamp for r in full), reverse=True)
    assert engine.get_adaptation_history(2) == full[:2]
    assert len(engine.get_adaptation_history(10)) == 4


def test_strategy_types_pick_their_patterns(engine):
    ids = {}
    for stype in StrategyType:
        s = engine.add_adaptive_strategy({
            "name": stype.value,
            "type": stype.value,
            "base_parameters": {"position_size": 0.05},
        })
        ids[s.id] = stype

    adapted = set()
    for prices in (UPTREND, SPIKE, OSCILLATING):
        for r in engine.process_market_data(make_snapshot(prices)):
            adapted.add(ids[r.strategy_id])

    assert adapted == {
        StrategyType.TREND_FOLLOWING,
        StrategyType.MOMENTUM,
        StrategyType.BREAKOUT,
        StrategyType.MEAN_REVERSION,
    }


def test_real_time_adaptation_disabled_only_detects(trend_strategy_spec, uptrend_snapshot):
    cfg = AdaptationConfig.default()
    cfg = replace(cfg, controller=ControllerConfig(enable_real_time_adaptation=False))
    engine = MarketAdaptationEngine(cfg)
    engine.add_adaptive_strategy(trend_strategy_spec)

    assert engine.process_market_data(uptrend_snapshot) == []
    patterns = engine.get_detected_patterns({"type": PatternType.TREND})
    assert len(patterns) == 1
    assert len(engine.adapt_strategies(patterns)) == 1


def test_summary_counts(engine, uptrend_snapshot, trend_strategy_spec):
    s = engine.add_adaptive_strategy(trend_strategy_spec)
    engine.set_performance_metrics(s.id, {"sharpe_ratio": 0.4})
    engine.adapt_strategies([])
    engine.process_market_data(uptrend_snapshot)

    summary = engine.get_adaptation_summary()
    assert summary["total_adaptations"] == 2
    assert summary["by_trigger_reason"] == {"sharpe_below_target": 1, "pattern_aligned": 1}
    assert summary["by_strategy"] == {s.id: 2}
    assert summary["fallbacks"] == 0


def test_concurrent_feeds_keep_invariants(engine, uptrend_snapshot, trend_strategy_spec):
    s = engine.add_adaptive_strategy(trend_strategy_spec)
    errors = []

    def feed():
        try:
            for _ in range(10):
                engine.process_market_data(uptrend_snapshot)
                engine.get_adaptive_strategies()
                engine.get_adaptation_history(5)
        except Exception as e:  # surfaced below
            errors.append(e)

    threads = [threading.Thread(target=feed) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    strategy = engine.get_strategy(s.id)
    history = engine.get_adaptation_history()
    assert strategy.adaptation_count == len(history) == 80
    assert len({r.id for r in history}) == 80
    assert strategy.current_parameters.position_size <= 0.1
    assert len(engine.get_detected_patterns()) == 80


def test_engine_history_and_cache_cannot_be_edited_by_callers(engine, trend_strategy_spec):
    engine.add_adaptive_strategy(trend_strategy_spec)
    snap = make_snapshot(UPTREND, technical_indicators={"rsi": 60.0})
    records = engine.process_market_data(snap)

    records[0].new_parameters["position_size"] = 99.0
    engine.get_adaptation_history()[0].new_parameters["position_size"] = 99.0
    assert engine.get_adaptation_history()[0].new_parameters["position_size"] == pytest.approx(0.055)

    pattern = engine.get_detected_patterns()[0]
    pattern.market_context.technical_indicators["rsi"] = -1.0
    pattern.characteristics["r_squared"] = -5.0
    cached = engine.get_detected_patterns()[0]
    assert cached.market_context.technical_indicators["rsi"] == 60.0
    assert cached.characteristics["r_squared"] == pytest.approx(1.0)
