"""
MarketAdaptationEngine - the explicitly constructed entry point.

Holds one coarse lock over the strategy registry, pattern cache and
adaptation log. Classification is pure and runs outside the lock; only the
cache/registry/log mutation is taken under it.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from ..core.config import AdaptationConfig, load_config
from ..core.models import (
    AdaptationRecord,
    AdaptiveStrategy,
    DetectedPattern,
    MarketPerformanceMetrics,
)
from ..log.audit_store import AuditStore
from ..log.exporters import summarize_adaptations
from .classifier import PatternClassifier
from .controller import AdaptationController

logger = logging.getLogger(__name__)


class MarketAdaptationEngine:
    """
    Pattern classifier + adaptation controller + audit store behind a single
    mutex. Construct one per owning service; it holds no external resources.
    """

    def __init__(self, config: Optional[AdaptationConfig] = None):
        self.config = config or load_config()
        self.classifier = PatternClassifier(self.config.classifier)
        self.audit_store = AuditStore(
            max_patterns=self.config.retention.max_patterns,
            max_history=self.config.retention.max_history,
        )
        self.controller = AdaptationController(self.config.controller, self.audit_store)
        self._lock = threading.RLock()

        logger.info(
            f"Market adaptation engine initialized: config_hash={self.config.config_hash[:12]} "
            f"confidence_threshold={self.config.controller.confidence_threshold} "
            f"real_time={self.config.controller.enable_real_time_adaptation}"
        )

    # ------------------------------------------------------------ patterns

    def detect_patterns(self, snapshot: Any) -> List[DetectedPattern]:
        """Classify a snapshot and add the result to the pattern cache."""
        patterns = self.classifier.detect_patterns(snapshot)
        if patterns:
            with self._lock:
                self.audit_store.record_patterns(patterns)
        return patterns

    def get_detected_patterns(self, filters: Optional[Mapping[str, Any]] = None) -> List[DetectedPattern]:
        with self._lock:
            return self.audit_store.get_detected_patterns(filters)

    # ------------------------------------------------------------ strategies

    def add_adaptive_strategy(self, strategy: Union[AdaptiveStrategy, Mapping[str, Any]]) -> AdaptiveStrategy:
        with self._lock:
            return self.controller.add_adaptive_strategy(strategy)

    def adapt_strategies(self, patterns: Optional[Iterable[DetectedPattern]] = None) -> List[AdaptationRecord]:
        patterns = list(patterns or [])
        with self._lock:
            return self.controller.adapt_strategies(patterns)

    def process_market_data(self, snapshot: Any) -> List[AdaptationRecord]:
        """
        Feed-loop entry point: detect, then adapt when real-time adaptation
        is enabled. Metric-only adaptations still need adapt_strategies().
        """
        patterns = self.detect_patterns(snapshot)
        if not self.config.controller.enable_real_time_adaptation or not patterns:
            return []
        return self.adapt_strategies(patterns)

    def set_performance_metrics(
        self,
        strategy_id: str,
        metrics: Union[MarketPerformanceMetrics, Mapping[str, Any]],
    ) -> None:
        with self._lock:
            self.controller.set_performance_metrics(strategy_id, metrics)

    def get_performance_metrics(self, strategy_id: str) -> MarketPerformanceMetrics:
        with self._lock:
            return self.controller.get_performance_metrics(strategy_id)

    def update_strategy_status(self, strategy_id: str, is_active: bool) -> None:
        with self._lock:
            self.controller.update_strategy_status(strategy_id, is_active)

    def get_adaptive_strategies(self) -> List[AdaptiveStrategy]:
        with self._lock:
            return self.controller.get_adaptive_strategies()

    def get_strategy(self, strategy_id: str) -> AdaptiveStrategy:
        with self._lock:
            return self.controller.get_strategy(strategy_id)

    # ------------------------------------------------------------ audit

    def get_adaptation_history(self, limit: int = 0) -> List[AdaptationRecord]:
        with self._lock:
            return self.audit_store.get_adaptation_history(limit)

    def get_adaptation_summary(self) -> Dict[str, Any]:
        with self._lock:
            records = self.audit_store.get_adaptation_history(0)
        return summarize_adaptations(records)
