"""
Adaptation Controller - bounded retuning of registered strategies.

Two triggers, evaluated per active strategy on every adapt_strategies call:
- Performance gap: a newly pushed metrics snapshot misses a target
  (Sharpe, drawdown, win rate). Each snapshot is evaluated once.
- Pattern alignment: a pattern with confidence >= threshold whose type and
  direction suit the strategy type.

Underperformance wins over reinforcement. Every mutation is re-clamped to the
strategy's risk limits; a breached bound is clamped silently. Non-finite
results leave the parameter unchanged and are noted in the record.
"""

from __future__ import annotations

import copy
import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Tuple, Union

from ..core.config import ControllerConfig
from ..core.errors import StrategyNotFoundError, StrategyValidationError
from ..core.models import (
    AdaptationRecord,
    AdaptiveStrategy,
    DetectedPattern,
    MarketPerformanceMetrics,
    MarketRiskLimits,
    ParameterSet,
)
from ..core.types import AdaptationType, Direction, PatternType, StrategyType, TriggerKind, new_id, utc_now
from ..log.audit_store import AuditStore
from .stats import clamp

logger = logging.getLogger(__name__)

ANY_DIRECTION: FrozenSet[Direction] = frozenset(Direction)
DIRECTIONAL: FrozenSet[Direction] = frozenset({Direction.UP, Direction.DOWN})

# Strategy type -> pattern types (and directions) that reinforce it.
# Every StrategyType must have an entry; an empty mapping never reinforces.
PATTERN_ALIGNMENT: Dict[StrategyType, Dict[PatternType, FrozenSet[Direction]]] = {
    StrategyType.TREND_FOLLOWING: {PatternType.TREND: DIRECTIONAL},
    StrategyType.MOMENTUM: {PatternType.TREND: DIRECTIONAL},
    StrategyType.MEAN_REVERSION: {
        PatternType.MEAN_REVERSION: ANY_DIRECTION,
        PatternType.RANGE: ANY_DIRECTION,
    },
    StrategyType.BREAKOUT: {PatternType.VOLATILITY_SPIKE: ANY_DIRECTION},
    StrategyType.CUSTOM: {},
}


@dataclass(frozen=True)
class TriggerDecision:
    """Outcome of trigger evaluation for one strategy."""
    underperformance: Tuple[str, ...] = ()
    performance_confidence: float = 0.0
    pattern: Optional[DetectedPattern] = None

    @property
    def underperforming(self) -> bool:
        return bool(self.underperformance)

    @property
    def reinforceable(self) -> bool:
        return self.pattern is not None

    @property
    def fires(self) -> bool:
        return self.underperforming or self.reinforceable


def _relative_gap(diff: float, reference: float) -> float:
    if reference == 0:
        return 1.0
    return diff / abs(reference)


class AdaptationController:
    """
    Owns the registry of adaptive strategies and decides when and how much
    to mutate their current parameters.

    Not thread-safe by itself; MarketAdaptationEngine wraps every call in its
    lock.
    """

    def __init__(self, config: Optional[ControllerConfig] = None, audit_store: Optional[AuditStore] = None):
        self.config = config or ControllerConfig()
        self.audit_store = audit_store if audit_store is not None else AuditStore()
        # dict keeps registration order, which is also adaptation order
        self._strategies: Dict[str, AdaptiveStrategy] = {}
        self._pending_metrics: Set[str] = set()

    # ------------------------------------------------------------ registry

    def add_adaptive_strategy(self, strategy: Union[AdaptiveStrategy, Mapping[str, Any]]) -> AdaptiveStrategy:
        """
        Register a strategy under a fresh id.

        Returns:
            Copy of the registered strategy

        Raises:
            StrategyValidationError: name or type missing/invalid
        """
        if isinstance(strategy, Mapping):
            strategy = AdaptiveStrategy.from_mapping(strategy)
        if not isinstance(strategy, AdaptiveStrategy):
            raise StrategyValidationError(f"expected AdaptiveStrategy, got {type(strategy).__name__}")

        s = copy.deepcopy(strategy)
        if not isinstance(s.name, str) or not s.name.strip():
            raise StrategyValidationError("strategy name is required")
        if not isinstance(s.type, StrategyType):
            try:
                s.type = StrategyType(s.type)
            except ValueError as e:
                raise StrategyValidationError(f"unknown strategy type: {s.type!r}") from e

        try:
            s.base_parameters = ParameterSet.from_mapping(s.base_parameters)
            s.current_parameters = ParameterSet.from_mapping(s.current_parameters)
        except (TypeError, ValueError) as e:
            raise StrategyValidationError(f"invalid strategy parameters: {e}") from e
        if s.current_parameters.is_empty():
            s.current_parameters = s.base_parameters.copy()
        elif s.base_parameters.is_empty():
            s.base_parameters = s.current_parameters.copy()

        s.id = new_id()
        s.is_active = True
        s.adaptation_count = 0
        s.adaptation_history = []
        s.created_at = utc_now()
        s.last_adaptation = None

        self._strategies[s.id] = s
        if s.performance_metrics is not None:
            s.performance_metrics.strategy_id = s.id
            self._pending_metrics.add(s.id)

        logger.info(f"Adaptive strategy added: {s.id} ({s.name}, {s.type.value})")
        return copy.deepcopy(s)

    def update_strategy_status(self, strategy_id: str, is_active: bool) -> None:
        s = self._get(strategy_id)
        s.is_active = bool(is_active)
        logger.info(f"Strategy status updated: {strategy_id} is_active={s.is_active}")

    def set_performance_metrics(
        self,
        strategy_id: str,
        metrics: Union[MarketPerformanceMetrics, Mapping[str, Any]],
    ) -> None:
        """Attach an externally computed metrics snapshot; evaluated on the next adapt call."""
        s = self._get(strategy_id)
        parsed = MarketPerformanceMetrics.from_payload(metrics)
        parsed.strategy_id = strategy_id
        if parsed.last_updated is None:
            parsed.last_updated = utc_now()
        s.performance_metrics = parsed
        self._pending_metrics.add(strategy_id)
        logger.info(
            f"Performance metrics set for {strategy_id}: sharpe={parsed.sharpe_ratio} "
            f"drawdown={parsed.max_drawdown} win_rate={parsed.win_rate}"
        )

    def get_performance_metrics(self, strategy_id: str) -> MarketPerformanceMetrics:
        if not strategy_id:
            raise StrategyValidationError("strategy ID is required")
        s = self._get(strategy_id)
        if s.performance_metrics is None:
            raise StrategyNotFoundError(strategy_id, what="performance metrics")
        return copy.deepcopy(s.performance_metrics)

    def get_adaptive_strategies(self) -> List[AdaptiveStrategy]:
        return [copy.deepcopy(s) for s in self._strategies.values()]

    def get_strategy(self, strategy_id: str) -> AdaptiveStrategy:
        return copy.deepcopy(self._get(strategy_id))

    def _get(self, strategy_id: str) -> AdaptiveStrategy:
        s = self._strategies.get(strategy_id)
        if s is None:
            raise StrategyNotFoundError(strategy_id)
        return s

    # ------------------------------------------------------------ adaptation

    def adapt_strategies(self, patterns: Optional[Iterable[DetectedPattern]] = None) -> List[AdaptationRecord]:
        """
        Evaluate every active strategy against the patterns and any pending
        metrics, applying at most one mutation per strategy.

        Returns:
            Records written by this call, in registration order
        """
        patterns = list(patterns or [])
        records: List[AdaptationRecord] = []

        for s in list(self._strategies.values()):
            if not s.is_active:
                continue
            try:
                record = self._adapt_one(s, patterns)
            except Exception:
                logger.exception(f"Adaptation failed for strategy {s.id}; continuing")
                continue
            if record is not None:
                records.append(record)

        if patterns or records:
            logger.info(
                f"Strategy adaptation completed: patterns={len(patterns)} "
                f"adaptations={len(records)} total_history={len(self.audit_store)}"
            )
        return records

    def evaluate_triggers(self, strategy: AdaptiveStrategy, patterns: List[DetectedPattern]) -> TriggerDecision:
        reasons, confidence = self._performance_gaps(strategy)
        pattern = self._aligned_pattern(strategy.type, patterns)
        return TriggerDecision(
            underperformance=tuple(reasons),
            performance_confidence=confidence,
            pattern=pattern,
        )

    def _performance_gaps(self, s: AdaptiveStrategy) -> Tuple[List[str], float]:
        m = s.performance_metrics
        if m is None or s.id not in self._pending_metrics:
            return [], 0.0

        t = s.performance_targets
        reasons: List[str] = []
        gaps: List[float] = []

        if m.sharpe_ratio is not None and t.min_sharpe_ratio is not None and m.sharpe_ratio < t.min_sharpe_ratio:
            reasons.append("sharpe_below_target")
            gaps.append(_relative_gap(t.min_sharpe_ratio - m.sharpe_ratio, t.min_sharpe_ratio))

        # Drawdown may be reported signed; compare magnitudes
        if m.max_drawdown is not None and t.max_drawdown is not None and abs(m.max_drawdown) > abs(t.max_drawdown):
            reasons.append("drawdown_above_target")
            gaps.append(_relative_gap(abs(m.max_drawdown) - abs(t.max_drawdown), t.max_drawdown))

        if m.win_rate is not None and t.min_win_rate is not None and m.win_rate < t.min_win_rate:
            reasons.append("win_rate_below_target")
            gaps.append(_relative_gap(t.min_win_rate - m.win_rate, t.min_win_rate))

        if not reasons:
            return [], 0.0
        return reasons, clamp(0.5 + 0.5 * max(gaps), 0.5, 1.0)

    def _aligned_pattern(self, strategy_type: StrategyType, patterns: List[DetectedPattern]) -> Optional[DetectedPattern]:
        aligned = PATTERN_ALIGNMENT[strategy_type]
        for p in patterns:
            if p.confidence < self.config.confidence_threshold:
                continue
            directions = aligned.get(p.type)
            if directions and p.direction in directions:
                return p
        return None

    def _adapt_one(self, s: AdaptiveStrategy, patterns: List[DetectedPattern]) -> Optional[AdaptationRecord]:
        decision = self.evaluate_triggers(s, patterns)
        # A metrics snapshot is consumed by its first evaluation
        self._pending_metrics.discard(s.id)
        if not decision.fires:
            return None

        before = s.current_parameters.as_dict()
        params = s.current_parameters.copy()
        fallbacks: List[str] = []

        if decision.underperforming:
            self._shrink_risk(params, fallbacks)
            kind = TriggerKind.PERFORMANCE
            reason = ",".join(decision.underperformance)
            confidence = decision.performance_confidence
            pattern_id = None
        else:
            p = decision.pattern
            self._reinforce(params, p, fallbacks)
            kind = TriggerKind.PATTERN
            reason = f"pattern_aligned: {p.type.value}/{p.direction.value} confidence={p.confidence:.2f}"
            confidence = p.confidence
            pattern_id = p.id

        self._clamp(params, s.risk_limits, fallbacks)
        after = params.as_dict()

        if after == before and not fallbacks:
            logger.info(f"Strategy {s.id} triggered ({reason}) but no parameter moved; nothing recorded")
            return None

        record_type = AdaptationType.STRATEGY_ADAPTED
        if fallbacks:
            record_type = AdaptationType.STRATEGY_ADAPTED_WITH_FALLBACK
            unchanged = ",".join(sorted(set(fallbacks)))
            reason = f"{reason}; fallback: {unchanged} unchanged"
            logger.warning(f"Non-finite adaptation result for {s.id}: {unchanged} left unchanged")

        now = utc_now()
        record = AdaptationRecord(
            id=new_id(),
            type=record_type,
            strategy_id=s.id,
            description=f"Strategy {s.name} adapted due to {reason}",
            trigger_reason=reason,
            trigger_kind=kind,
            confidence=clamp(confidence),
            timestamp=now,
            old_parameters=before,
            new_parameters=after,
            pattern_id=pattern_id,
        )

        s.current_parameters = params
        s.adaptation_count += 1
        s.adaptation_history.append(record.id)
        s.last_adaptation = now
        self.audit_store.append(record)

        logger.info(
            f"Strategy adapted: {s.id} reason={reason} confidence={record.confidence:.2f} "
            f"params={after}"
        )
        return record

    # ------------------------------------------------------------ mutations

    def _shrink_risk(self, params: ParameterSet, fallbacks: List[str]) -> None:
        step = self.config.adaptation_step
        _mutate(params, "position_size", lambda v: v * (1.0 - step), fallbacks)
        _mutate(params, "leverage", lambda v: v * (1.0 - step), fallbacks)
        # Raise the bar for entries; thresholds on a [0, 1] scale stay there
        _mutate(params, "entry_threshold", lambda v: min(v * (1.0 + step), max(v, 1.0)), fallbacks)
        _mutate(params, "stop_loss", lambda v: max(v * (1.0 - step), self.config.min_stop_loss), fallbacks)

    def _reinforce(self, params: ParameterSet, pattern: DetectedPattern, fallbacks: List[str]) -> None:
        step = self.config.adaptation_step
        _mutate(params, "position_size", lambda v: v * (1.0 + step), fallbacks)
        _mutate(params, "entry_threshold", lambda v: v + (pattern.confidence - v) * step, fallbacks)

    def _clamp(self, params: ParameterSet, limits: MarketRiskLimits, fallbacks: List[str]) -> None:
        inf = math.inf
        max_pos = limits.max_position_size if limits.max_position_size is not None else inf
        max_lev = limits.max_leverage if limits.max_leverage is not None else inf
        max_stop = limits.stop_loss_percentage if limits.stop_loss_percentage is not None else inf
        min_stop = min(self.config.min_stop_loss, max_stop)

        _mutate(params, "position_size", lambda v: min(max(v, 0.0), max_pos), fallbacks)
        _mutate(params, "leverage", lambda v: min(max(v, 0.0), max_lev), fallbacks)
        _mutate(params, "stop_loss", lambda v: min(max(v, min_stop), max_stop), fallbacks)


def _mutate(params: ParameterSet, name: str, fn: Callable[[float], float], fallbacks: List[str]) -> None:
    """Apply fn to one parameter; a non-finite result keeps the old value."""
    old = params.get(name)
    if old is None:
        return
    try:
        value = fn(old)
    except (ArithmeticError, ValueError, TypeError):
        value = math.nan
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        fallbacks.append(name)
        return
    params.set(name, float(value))
