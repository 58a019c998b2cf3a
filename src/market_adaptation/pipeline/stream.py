from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

from market_adaptation.core.config import AdaptationConfig
from market_adaptation.core.models import AdaptationRecord
from market_adaptation.engines.engine import MarketAdaptationEngine


class SnapshotPipeline:
    """
    Simple streaming pipeline that feeds market snapshots to the adaptation
    engine, optionally pushing per-strategy metrics before the first snapshot.
    """

    def __init__(
        self,
        engine: Optional[MarketAdaptationEngine] = None,
        config: Optional[AdaptationConfig] = None,
    ):
        self.engine = engine or MarketAdaptationEngine(config)

    def push_metrics(self, metrics: Mapping[str, Dict[str, Any]]) -> None:
        for strategy_id, m in metrics.items():
            self.engine.set_performance_metrics(strategy_id, m)

    def process(self, snapshots: Iterable[Any]) -> List[AdaptationRecord]:
        records: List[AdaptationRecord] = []
        for snap in snapshots:
            records.extend(self.engine.process_market_data(snap))
        # Metrics pushed without any fired pattern still get evaluated once
        records.extend(self.engine.adapt_strategies([]))
        return records
