"""
Domain types for the market adaptation engine.

Patterns, records and snapshots are frozen once produced. AdaptiveStrategy is
the only mutable type; it is owned by the controller's registry and callers
outside the engine only ever see copies of it.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from .errors import StrategyValidationError
from .events import (
    AdaptationRecordPayload,
    AdaptiveStrategyPayload,
    DetectedPatternPayload,
    MarketSnapshotPayload,
    PerformanceMetricsPayload,
    PerformanceTargetsPayload,
    RiskLimitsPayload,
    StrategySpecPayload,
)
from .types import AdaptationType, Direction, PatternType, StrategyType, TriggerKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MarketSnapshot:
    """Ordered (timestamp, price, volume) series plus optional annotations."""
    prices: Tuple[float, ...]
    volumes: Tuple[float, ...] = ()
    timestamps: Tuple[float, ...] = ()
    technical_indicators: Dict[str, float] = field(default_factory=dict)
    chart_analysis: Optional[Dict[str, Any]] = None
    asset: str = ""
    timeframe: str = ""

    def __post_init__(self):
        # Omitted volumes read as zeros, omitted timestamps as index seconds
        n = len(self.prices)
        object.__setattr__(self, "prices", tuple(self.prices))
        object.__setattr__(self, "volumes", tuple(self.volumes) if self.volumes else (0.0,) * n)
        object.__setattr__(
            self,
            "timestamps",
            tuple(self.timestamps) if self.timestamps else tuple(float(i) for i in range(n)),
        )

    @property
    def is_well_formed(self) -> bool:
        n = len(self.prices)
        if len(self.volumes) != n or len(self.timestamps) != n:
            return False
        return all(math.isfinite(p) for p in self.prices)

    @staticmethod
    def from_payload(data: Any) -> Optional["MarketSnapshot"]:
        """Parse the loosely-typed market data bag.

        Returns None when the bag is malformed; callers treat that as
        "no patterns", never as an error.
        """
        if isinstance(data, MarketSnapshot):
            return data
        if not isinstance(data, Mapping):
            logger.debug(f"Snapshot rejected: expected mapping, got {type(data).__name__}")
            return None
        try:
            payload = MarketSnapshotPayload.model_validate(dict(data))
        except ValidationError as e:
            logger.debug(f"Snapshot rejected: {e.error_count()} validation error(s)")
            return None

        return MarketSnapshot(
            prices=tuple(payload.prices),
            volumes=tuple(payload.volumes or ()),
            timestamps=tuple(payload.timestamps or ()),
            technical_indicators=dict(payload.technical_indicators),
            chart_analysis=dict(payload.chart_analysis) if payload.chart_analysis is not None else None,
            asset=payload.asset,
            timeframe=payload.timeframe,
        )


@dataclass(frozen=True)
class ExpectedOutcome:
    direction: Direction
    magnitude: float          # fractional price move
    probability: float
    time_horizon: timedelta
    risk_reward: float = 1.0


@dataclass(frozen=True)
class MarketContext:
    """Indicator bag and derived regime labels behind a pattern."""
    technical_indicators: Dict[str, float] = field(default_factory=dict)
    chart_analysis: Optional[Dict[str, Any]] = None
    market_regime: str = "sideways"      # bull, bear, sideways
    volatility_regime: str = "low"       # low, medium, high
    trend_direction: Direction = Direction.SIDEWAYS
    trend_strength: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "technical_indicators": dict(self.technical_indicators),
            "chart_analysis": self.chart_analysis,
            "market_regime": self.market_regime,
            "volatility_regime": self.volatility_regime,
            "trend_direction": self.trend_direction,
            "trend_strength": self.trend_strength,
        }


@dataclass(frozen=True)
class DetectedPattern:
    id: str
    type: PatternType
    name: str
    confidence: float
    strength: float
    expected_outcome: ExpectedOutcome
    market_context: MarketContext = field(default_factory=MarketContext)
    description: str = ""
    asset: str = ""
    timeframe: str = ""
    characteristics: Dict[str, float] = field(default_factory=dict)
    detected_at: Optional[datetime] = None

    @property
    def direction(self) -> Direction:
        return self.expected_outcome.direction

    def to_payload(self) -> Dict[str, Any]:
        eo = self.expected_outcome
        payload = DetectedPatternPayload(
            id=self.id,
            type=self.type,
            name=self.name,
            description=self.description,
            asset=self.asset,
            timeframe=self.timeframe,
            confidence=self.confidence,
            strength=self.strength,
            expected_outcome={
                "direction": eo.direction,
                "magnitude": eo.magnitude,
                "probability": eo.probability,
                "time_horizon": eo.time_horizon,
                "risk_reward": eo.risk_reward,
            },
            market_context=self.market_context.to_dict(),
            characteristics=dict(self.characteristics),
            detected_at=self.detected_at,
        )
        return payload.model_dump(mode="json")


# Parameters bounded by MarketRiskLimits after every mutation.
GOVERNED_PARAMETERS = ("position_size", "leverage", "stop_loss")


@dataclass
class ParameterSet:
    """Named strategy parameters; `custom` holds anything open-ended."""
    position_size: Optional[float] = None
    stop_loss: Optional[float] = None
    entry_threshold: Optional[float] = None
    leverage: Optional[float] = None
    take_profit: Optional[float] = None
    custom: Dict[str, float] = field(default_factory=dict)

    @classmethod
    def named_fields(cls) -> Tuple[str, ...]:
        return tuple(f.name for f in fields(cls) if f.name != "custom")

    @classmethod
    def from_mapping(cls, values: Optional[Mapping[str, float]]) -> "ParameterSet":
        if isinstance(values, ParameterSet):
            return values.copy()
        named = cls.named_fields()
        params = cls()
        for name, value in (values or {}).items():
            if name in named:
                setattr(params, name, float(value))
            else:
                params.custom[name] = float(value)
        return params

    def as_dict(self) -> Dict[str, float]:
        out = {name: getattr(self, name) for name in self.named_fields() if getattr(self, name) is not None}
        out.update(self.custom)
        return out

    def get(self, name: str) -> Optional[float]:
        if name in self.named_fields():
            return getattr(self, name)
        return self.custom.get(name)

    def set(self, name: str, value: float) -> None:
        if name in self.named_fields():
            setattr(self, name, value)
        else:
            self.custom[name] = value

    def copy(self) -> "ParameterSet":
        return ParameterSet(
            position_size=self.position_size,
            stop_loss=self.stop_loss,
            entry_threshold=self.entry_threshold,
            leverage=self.leverage,
            take_profit=self.take_profit,
            custom=dict(self.custom),
        )

    def is_empty(self) -> bool:
        return not self.as_dict()


@dataclass
class PerformanceTargets:
    target_return: Optional[float] = None
    max_drawdown: Optional[float] = None
    min_sharpe_ratio: Optional[float] = None
    min_win_rate: Optional[float] = None
    max_volatility: Optional[float] = None
    target_profit_factor: Optional[float] = None
    evaluation_period: Optional[timedelta] = None

    @classmethod
    def from_payload(cls, payload: PerformanceTargetsPayload) -> "PerformanceTargets":
        return cls(**payload.model_dump())

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class MarketRiskLimits:
    """Hard bounds; None means the limit is not set."""
    max_position_size: Optional[float] = None
    max_leverage: Optional[float] = None
    stop_loss_percentage: Optional[float] = None
    take_profit_ratio: Optional[float] = None
    max_daily_loss: Optional[float] = None
    var_limit: Optional[float] = None
    concentration_limit: Optional[float] = None

    @classmethod
    def from_payload(cls, payload: RiskLimitsPayload) -> "MarketRiskLimits":
        return cls(**payload.model_dump())

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class MarketPerformanceMetrics:
    """Realized performance reported by a backtest or live-trading collaborator."""
    strategy_id: Optional[str] = None
    total_return: Optional[float] = None
    annualized_return: Optional[float] = None
    volatility: Optional[float] = None
    sharpe_ratio: Optional[float] = None
    sortino_ratio: Optional[float] = None
    max_drawdown: Optional[float] = None
    win_rate: Optional[float] = None
    profit_factor: Optional[float] = None
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    last_updated: Optional[datetime] = None

    @classmethod
    def from_payload(cls, data: Union["MarketPerformanceMetrics", Mapping[str, Any]]) -> "MarketPerformanceMetrics":
        if isinstance(data, MarketPerformanceMetrics):
            return MarketPerformanceMetrics(**data.to_dict())
        if not isinstance(data, Mapping):
            raise StrategyValidationError(f"performance metrics must be a mapping, got {type(data).__name__}")
        try:
            payload = PerformanceMetricsPayload.model_validate(dict(data))
        except ValidationError as e:
            raise StrategyValidationError(f"invalid performance metrics: {e}") from e
        return cls(**payload.model_dump())

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class AdaptiveStrategy:
    name: str
    type: StrategyType
    description: str = ""
    base_parameters: ParameterSet = field(default_factory=ParameterSet)
    current_parameters: ParameterSet = field(default_factory=ParameterSet)
    performance_targets: PerformanceTargets = field(default_factory=PerformanceTargets)
    risk_limits: MarketRiskLimits = field(default_factory=MarketRiskLimits)
    performance_metrics: Optional[MarketPerformanceMetrics] = None
    id: str = ""
    adaptation_count: int = 0
    adaptation_history: List[str] = field(default_factory=list)
    is_active: bool = True
    created_at: Optional[datetime] = None
    last_adaptation: Optional[datetime] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AdaptiveStrategy":
        """Build an unregistered strategy from a config/API mapping."""
        if not isinstance(data, Mapping):
            raise StrategyValidationError(f"strategy spec must be a mapping, got {type(data).__name__}")
        try:
            spec = StrategySpecPayload.model_validate(dict(data))
        except ValidationError as e:
            raise StrategyValidationError(f"invalid strategy spec: {e}") from e

        metrics = None
        if spec.performance_metrics is not None:
            metrics = MarketPerformanceMetrics(**spec.performance_metrics.model_dump())
        return cls(
            name=spec.name,
            type=spec.type,
            description=spec.description,
            base_parameters=ParameterSet.from_mapping(spec.base_parameters),
            current_parameters=ParameterSet.from_mapping(spec.current_parameters),
            performance_targets=PerformanceTargets.from_payload(spec.performance_targets),
            risk_limits=MarketRiskLimits.from_payload(spec.risk_limits),
            performance_metrics=metrics,
        )

    def to_payload(self) -> Dict[str, Any]:
        payload = AdaptiveStrategyPayload(
            id=self.id,
            name=self.name,
            description=self.description,
            type=self.type,
            base_parameters=self.base_parameters,
            current_parameters=self.current_parameters,
            performance_targets=self.performance_targets.to_dict(),
            risk_limits=self.risk_limits.to_dict(),
            performance_metrics=self.performance_metrics.to_dict() if self.performance_metrics else None,
            adaptation_count=self.adaptation_count,
            adaptation_history=list(self.adaptation_history),
            is_active=self.is_active,
            created_at=self.created_at,
            last_adaptation=self.last_adaptation,
        )
        return payload.model_dump(mode="json")


@dataclass(frozen=True)
class AdaptationRecord:
    """One accepted adaptation. Never mutated after it is written."""
    id: str
    type: AdaptationType
    strategy_id: str
    description: str
    trigger_reason: str
    trigger_kind: TriggerKind
    confidence: float
    timestamp: datetime
    old_parameters: Dict[str, float] = field(default_factory=dict)
    new_parameters: Dict[str, float] = field(default_factory=dict)
    pattern_id: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload = AdaptationRecordPayload(
            id=self.id,
            type=self.type,
            strategy_id=self.strategy_id,
            description=self.description,
            trigger_reason=self.trigger_reason,
            trigger_kind=self.trigger_kind,
            confidence=self.confidence,
            timestamp=self.timestamp,
            old_parameters=dict(self.old_parameters),
            new_parameters=dict(self.new_parameters),
            pattern_id=self.pattern_id,
        )
        return payload.model_dump(mode="json")
