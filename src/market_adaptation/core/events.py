from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    FiniteFloat,
    field_serializer,
    field_validator,
    model_validator,
)

from .types import AdaptationType, Direction, PatternType, StrategyType, TriggerKind

# Boundary schemas: inbound payloads are validated here, outbound values are
# dumped through these models so the API layer sees a stable JSON shape.


def _parameters_dict(value: Any) -> Any:
    if hasattr(value, "as_dict"):
        return value.as_dict()
    return value


# ---------------------------------------------------------------- inbound

class MarketSnapshotPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    prices: List[FiniteFloat]
    volumes: Optional[List[FiniteFloat]] = None
    timestamps: Optional[List[FiniteFloat]] = None
    technical_indicators: Dict[str, FiniteFloat] = Field(default_factory=dict)
    chart_analysis: Optional[Dict[str, Any]] = None
    asset: str = ""
    timeframe: str = ""

    @model_validator(mode="after")
    def _equal_lengths(self) -> "MarketSnapshotPayload":
        n = len(self.prices)
        if self.volumes is not None and len(self.volumes) != n:
            raise ValueError(f"volumes length {len(self.volumes)} != prices length {n}")
        if self.timestamps is not None and len(self.timestamps) != n:
            raise ValueError(f"timestamps length {len(self.timestamps)} != prices length {n}")
        return self


class PerformanceMetricsPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    strategy_id: Optional[str] = None
    total_return: Optional[FiniteFloat] = None
    annualized_return: Optional[FiniteFloat] = None
    volatility: Optional[FiniteFloat] = None
    sharpe_ratio: Optional[FiniteFloat] = None
    sortino_ratio: Optional[FiniteFloat] = None
    max_drawdown: Optional[FiniteFloat] = None
    win_rate: Optional[FiniteFloat] = Field(default=None, ge=0.0, le=1.0)
    profit_factor: Optional[FiniteFloat] = None
    total_trades: int = Field(default=0, ge=0)
    winning_trades: int = Field(default=0, ge=0)
    losing_trades: int = Field(default=0, ge=0)
    last_updated: Optional[datetime] = None


class PerformanceTargetsPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    target_return: Optional[float] = None
    max_drawdown: Optional[float] = None
    min_sharpe_ratio: Optional[float] = None
    min_win_rate: Optional[float] = None
    max_volatility: Optional[float] = None
    target_profit_factor: Optional[float] = None
    evaluation_period: Optional[timedelta] = None

    @field_serializer("evaluation_period")
    def _period_seconds(self, value: Optional[timedelta]) -> Optional[float]:
        return value.total_seconds() if value is not None else None


class RiskLimitsPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    max_position_size: Optional[float] = Field(default=None, ge=0.0)
    max_leverage: Optional[float] = Field(default=None, ge=0.0)
    stop_loss_percentage: Optional[float] = Field(default=None, ge=0.0)
    take_profit_ratio: Optional[float] = None
    max_daily_loss: Optional[float] = None
    var_limit: Optional[float] = None
    concentration_limit: Optional[float] = None


class StrategySpecPayload(BaseModel):
    """Registration request for an adaptive strategy."""
    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1)
    type: StrategyType
    description: str = ""
    base_parameters: Dict[str, FiniteFloat] = Field(default_factory=dict)
    current_parameters: Dict[str, FiniteFloat] = Field(default_factory=dict)
    performance_targets: PerformanceTargetsPayload = Field(default_factory=PerformanceTargetsPayload)
    risk_limits: RiskLimitsPayload = Field(default_factory=RiskLimitsPayload)
    performance_metrics: Optional[PerformanceMetricsPayload] = None

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("name must not be blank")
        return value.strip()


# ---------------------------------------------------------------- outbound

class ExpectedOutcomePayload(BaseModel):
    direction: Direction
    magnitude: float
    probability: float = Field(ge=0.0, le=1.0)
    time_horizon: timedelta
    risk_reward: float

    @field_serializer("time_horizon")
    def _horizon_seconds(self, value: timedelta) -> float:
        return value.total_seconds()


class MarketContextPayload(BaseModel):
    technical_indicators: Dict[str, float]
    chart_analysis: Optional[Dict[str, Any]]
    market_regime: str
    volatility_regime: str
    trend_direction: Direction
    trend_strength: float


class DetectedPatternPayload(BaseModel):
    id: str
    type: PatternType
    name: str
    description: str
    asset: str
    timeframe: str
    confidence: float = Field(ge=0.0, le=1.0)
    strength: float = Field(ge=0.0, le=1.0)
    expected_outcome: ExpectedOutcomePayload
    market_context: MarketContextPayload
    characteristics: Dict[str, float]
    detected_at: Optional[datetime] = None


class AdaptiveStrategyPayload(BaseModel):
    id: str
    name: str
    description: str
    type: StrategyType
    base_parameters: Dict[str, float]
    current_parameters: Dict[str, float]
    performance_targets: PerformanceTargetsPayload
    risk_limits: RiskLimitsPayload
    performance_metrics: Optional[PerformanceMetricsPayload]
    adaptation_count: int
    adaptation_history: List[str]
    is_active: bool
    created_at: Optional[datetime]
    last_adaptation: Optional[datetime]

    @field_validator("base_parameters", "current_parameters", mode="before")
    @classmethod
    def _flatten_parameters(cls, value: Any) -> Any:
        return _parameters_dict(value)


class AdaptationRecordPayload(BaseModel):
    id: str
    type: AdaptationType
    strategy_id: str
    description: str
    trigger_reason: str
    trigger_kind: TriggerKind
    confidence: float = Field(ge=0.0, le=1.0)
    timestamp: datetime
    old_parameters: Dict[str, float]
    new_parameters: Dict[str, float]
    pattern_id: Optional[str] = None
