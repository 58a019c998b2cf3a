from __future__ import annotations

from collections import Counter
from typing import Any, Dict, Iterable

from market_adaptation.core.models import AdaptationRecord
from market_adaptation.core.types import AdaptationType, TriggerKind


def summarize_adaptations(records: Iterable[AdaptationRecord]) -> Dict[str, Any]:
    by_type = Counter()
    by_reason = Counter()
    by_strategy = Counter()
    confidence_sum = 0.0
    total = 0

    for r in records:
        total += 1
        by_type[r.type.value] += 1
        # "sharpe_below_target,win_rate_below_target; fallback: ..." counts each code
        codes = r.trigger_reason.split(";", 1)[0]
        if r.trigger_kind is TriggerKind.PATTERN:
            by_reason["pattern_aligned"] += 1
        else:
            for code in codes.split(","):
                by_reason[code.strip()] += 1
        by_strategy[r.strategy_id] += 1
        confidence_sum += r.confidence

    return {
        "total_adaptations": total,
        "by_type": dict(by_type),
        "by_trigger_reason": dict(by_reason),
        "by_strategy": dict(by_strategy),
        "fallbacks": by_type.get(AdaptationType.STRATEGY_ADAPTED_WITH_FALLBACK.value, 0),
        "average_confidence": confidence_sum / total if total else 0.0,
    }
