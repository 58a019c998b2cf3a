from __future__ import annotations

from datetime import datetime, timezone

import pytest

from market_adaptation.core.models import AdaptationRecord
from market_adaptation.core.types import AdaptationType, TriggerKind, new_id
from market_adaptation.log.exporters import summarize_adaptations


def rec(strategy_id, kind, reason, confidence, rtype=AdaptationType.STRATEGY_ADAPTED):
    return AdaptationRecord(
        id=new_id(),
        type=rtype,
        strategy_id=strategy_id,
        description="",
        trigger_reason=reason,
        trigger_kind=kind,
        confidence=confidence,
        timestamp=datetime.now(timezone.utc),
    )


def test_summarize_adaptations():
    records = [
        rec("a", TriggerKind.PERFORMANCE, "sharpe_below_target,win_rate_below_target", 0.8),
        rec("a", TriggerKind.PATTERN, "pattern_aligned: trend/up confidence=0.90", 0.9),
        rec(
            "b",
            TriggerKind.PATTERN,
            "pattern_aligned: range/sideways confidence=0.70; fallback: position_size unchanged",
            0.7,
            AdaptationType.STRATEGY_ADAPTED_WITH_FALLBACK,
        ),
    ]
    summary = summarize_adaptations(records)
    assert summary["total_adaptations"] == 3
    assert summary["by_type"] == {"strategy_adapted": 2, "strategy_adapted_with_fallback": 1}
    assert summary["by_trigger_reason"] == {
        "sharpe_below_target": 1,
        "win_rate_below_target": 1,
        "pattern_aligned": 2,
    }
    assert summary["by_strategy"] == {"a": 2, "b": 1}
    assert summary["fallbacks"] == 1
    assert summary["average_confidence"] == pytest.approx(0.8)


def test_summarize_empty():
    summary = summarize_adaptations([])
    assert summary["total_adaptations"] == 0
    assert summary["average_confidence"] == 0.0
