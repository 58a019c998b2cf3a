"""
Pattern Classifier - deterministic, explainable market pattern detection.

Evaluation order (also the output order):
1. Trend: least-squares slope normalized by mean price, or any strictly
   monotonic series; confidence = R²
2. Volatility spike: trailing return stdev vs the earlier baseline
3. Mean reversion / range: bounded oscillation around a rolling mean,
   only when no trend was found

Indicators supplied with the snapshot (rsi, macd) nudge confidence by a
bounded correction. Malformed or short input yields no patterns, never an
exception.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional, Sequence

from ..core.config import ClassifierConfig
from ..core.models import DetectedPattern, ExpectedOutcome, MarketContext, MarketSnapshot
from ..core.types import Direction, PatternType, new_id, utc_now
from .stats import (
    clamp,
    count_crossings,
    is_strictly_monotonic,
    linear_fit,
    mean,
    pct_returns,
    ratio,
    rolling_mean,
    stdev,
)

logger = logging.getLogger(__name__)


@dataclass
class _Candidate:
    """A pattern before enrichment; becomes a DetectedPattern once context is known."""
    type: PatternType
    name: str
    description: str
    confidence: float
    strength: float
    direction: Direction
    magnitude: float
    risk_reward: float = 1.0
    characteristics: Dict[str, float] = field(default_factory=dict)


class PatternClassifier:
    """
    Stateless classifier. Safe to call from any thread without holding the
    engine lock.
    """

    def __init__(self, config: Optional[ClassifierConfig] = None):
        self.config = config or ClassifierConfig()

    def detect_patterns(self, snapshot: Any) -> List[DetectedPattern]:
        """
        Classify a market snapshot.

        Args:
            snapshot: MarketSnapshot or the raw market-data mapping

        Returns:
            Patterns in detection order (trend, volatility, mean reversion);
            empty when the input is malformed or too short
        """
        snap = MarketSnapshot.from_payload(snapshot)
        if snap is None or not snap.is_well_formed:
            return []

        cfg = self.config
        prices = list(snap.prices)
        if len(prices) < cfg.min_points:
            logger.debug(f"Snapshot too short: {len(prices)} < {cfg.min_points} prices")
            return []

        mean_price = mean(prices)
        if not math.isfinite(mean_price) or mean_price <= 0:
            logger.debug(f"Snapshot rejected: mean price {mean_price}")
            return []

        fit = linear_fit(prices)
        normalized_slope = fit.slope / mean_price
        returns = pct_returns(prices)
        volume_ratio = self._volume_ratio(snap.volumes)

        trend = self._trend(prices, fit.slope, normalized_slope, fit.r_squared)
        volatility = self._volatility_spike(returns)
        reversion = None if trend is not None else self._mean_reversion(prices, mean_price)

        candidates = [c for c in (trend, volatility, reversion) if c is not None]
        if not candidates:
            return []

        context = self._market_context(snap, normalized_slope, returns, trend)
        horizon = self._time_horizon(snap.timestamps)
        detected_at = utc_now()

        patterns: List[DetectedPattern] = []
        for c in candidates:
            adjustment = self._indicator_adjustment(c.type, c.direction, snap.technical_indicators)
            confidence = clamp(c.confidence + adjustment)
            characteristics = dict(c.characteristics)
            characteristics["volume_ratio"] = volume_ratio
            if adjustment:
                characteristics["indicator_adjustment"] = adjustment

            patterns.append(DetectedPattern(
                id=new_id(),
                type=c.type,
                name=c.name,
                description=c.description,
                asset=snap.asset,
                timeframe=snap.timeframe,
                confidence=confidence,
                strength=clamp(c.strength),
                expected_outcome=ExpectedOutcome(
                    direction=c.direction,
                    magnitude=c.magnitude,
                    probability=confidence,
                    time_horizon=horizon,
                    risk_reward=c.risk_reward,
                ),
                market_context=context,
                characteristics=characteristics,
                detected_at=detected_at,
            ))

        logger.debug(f"Detected {len(patterns)} pattern(s): {[p.type.value for p in patterns]}")
        return patterns

    # ------------------------------------------------------------ tests

    def _trend(
        self,
        prices: Sequence[float],
        slope: float,
        normalized_slope: float,
        r_squared: float,
    ) -> Optional[_Candidate]:
        cfg = self.config
        # A strictly monotonic series is a trend however gentle its slope
        monotonic = is_strictly_monotonic(prices)
        if abs(normalized_slope) <= cfg.trend_slope_threshold and not monotonic:
            return None

        up = normalized_slope > 0
        change = (prices[-1] / prices[0] - 1.0) if prices[0] != 0 else 0.0
        strength = clamp(abs(normalized_slope) / cfg.trend_strength_scale)
        return _Candidate(
            type=PatternType.TREND,
            name="Upward Trend" if up else "Downward Trend",
            description=(
                f"{'Rising' if up else 'Falling'} prices over {len(prices)} points, "
                f"{normalized_slope * 100:+.2f}% per step (R²={r_squared:.2f})"
            ),
            confidence=r_squared,
            strength=strength,
            direction=Direction.UP if up else Direction.DOWN,
            magnitude=change,
            risk_reward=cfg.trend_risk_reward,
            characteristics={
                "slope": slope,
                "normalized_slope": normalized_slope,
                "r_squared": r_squared,
                "trend_strength": strength,
                "momentum": change,
            },
        )

    def _volatility_spike(self, returns: Sequence[float]) -> Optional[_Candidate]:
        cfg = self.config
        recent = returns[-cfg.volatility_window:]
        if len(recent) < 2:
            return None

        earlier = returns[:-cfg.volatility_window]
        baseline = stdev(earlier) if len(earlier) >= 2 else 0.0
        baseline = max(baseline, cfg.volatility_floor)
        recent_vol = stdev(recent)
        vol_ratio = recent_vol / baseline
        if vol_ratio <= cfg.volatility_multiplier:
            return None

        confidence = clamp(0.5 + 0.5 * (vol_ratio / cfg.volatility_multiplier - 1.0), 0.5, 0.95)
        return _Candidate(
            type=PatternType.VOLATILITY_SPIKE,
            name="Volatility Spike",
            description=f"Return volatility {vol_ratio:.1f}x above baseline",
            confidence=confidence,
            strength=1.0 - cfg.volatility_multiplier / vol_ratio,
            direction=Direction.SIDEWAYS,
            magnitude=recent_vol,
            characteristics={
                "recent_volatility": recent_vol,
                "baseline_volatility": baseline,
                "volatility_ratio": vol_ratio,
            },
        )

    def _mean_reversion(self, prices: Sequence[float], mean_price: float) -> Optional[_Candidate]:
        cfg = self.config
        deviations = [(p - mean_price) / mean_price for p in prices]
        max_dev = max(abs(d) for d in deviations)
        if max_dev >= cfg.range_threshold:
            return None

        crossings = count_crossings(prices, rolling_mean(prices, cfg.mean_window))
        strength = clamp(1.0 - max_dev / cfg.range_threshold)
        characteristics = {
            "mean_price": mean_price,
            "max_deviation": max_dev,
            "mean_crossings": float(crossings),
        }

        if crossings < cfg.min_mean_crossings:
            return _Candidate(
                type=PatternType.RANGE,
                name="Trading Range",
                description=f"Prices held within {max_dev * 100:.2f}% of the mean",
                confidence=0.5,
                strength=strength,
                direction=Direction.SIDEWAYS,
                magnitude=max_dev,
                characteristics=characteristics,
            )

        # Expect a move back toward the mean
        last_dev = deviations[-1]
        if max_dev == 0 or abs(last_dev) <= max_dev / 4:
            direction = Direction.SIDEWAYS
        elif last_dev > 0:
            direction = Direction.DOWN
        else:
            direction = Direction.UP

        return _Candidate(
            type=PatternType.MEAN_REVERSION,
            name="Mean Reversion",
            description=(
                f"Price crossed its rolling mean {crossings} times "
                f"within a {max_dev * 100:.2f}% band"
            ),
            confidence=min(0.7, 0.5 + 0.05 * crossings),
            strength=strength,
            direction=direction,
            magnitude=max_dev,
            characteristics=characteristics,
        )

    # ------------------------------------------------------------ enrichment

    def _indicator_adjustment(
        self,
        pattern_type: PatternType,
        direction: Direction,
        indicators: Dict[str, float],
    ) -> float:
        """Bounded confidence correction from supplied indicators."""
        adj = 0.0

        rsi = indicators.get("rsi")
        if rsi is not None:
            if pattern_type is PatternType.TREND:
                if direction is Direction.UP:
                    adj += 0.05 if 50 <= rsi <= 70 else -0.05
                else:
                    adj += 0.05 if 30 <= rsi <= 50 else -0.05
            elif pattern_type is PatternType.MEAN_REVERSION:
                if direction is Direction.DOWN:
                    adj += 0.05 if rsi >= 70 else (-0.05 if rsi <= 30 else 0.0)
                elif direction is Direction.UP:
                    adj += 0.05 if rsi <= 30 else (-0.05 if rsi >= 70 else 0.0)
            elif pattern_type is PatternType.RANGE:
                adj += 0.05 if 40 <= rsi <= 60 else -0.05

        macd = indicators.get("macd_histogram", indicators.get("macd"))
        if macd is not None and pattern_type is PatternType.TREND:
            agrees = macd > 0 if direction is Direction.UP else macd < 0
            adj += 0.05 if agrees else -0.05

        bound = self.config.max_indicator_adjustment
        return clamp(adj, -bound, bound)

    def _market_context(
        self,
        snap: MarketSnapshot,
        normalized_slope: float,
        returns: Sequence[float],
        trend: Optional[_Candidate] = None,
    ) -> MarketContext:
        cfg = self.config
        up = trend.direction is Direction.UP if trend is not None else normalized_slope > cfg.trend_slope_threshold
        down = trend.direction is Direction.DOWN if trend is not None else normalized_slope < -cfg.trend_slope_threshold
        if up:
            regime, direction = "bull", Direction.UP
        elif down:
            regime, direction = "bear", Direction.DOWN
        else:
            regime, direction = "sideways", Direction.SIDEWAYS

        vol = stdev(returns)
        if vol < cfg.volatility_floor:
            vol_regime = "low"
        elif vol < cfg.volatility_floor * cfg.volatility_multiplier:
            vol_regime = "medium"
        else:
            vol_regime = "high"

        return MarketContext(
            technical_indicators=dict(snap.technical_indicators),
            chart_analysis=snap.chart_analysis,
            market_regime=regime,
            volatility_regime=vol_regime,
            trend_direction=direction,
            trend_strength=clamp(abs(normalized_slope) / cfg.trend_strength_scale),
        )

    def _time_horizon(self, timestamps: Sequence[float]) -> timedelta:
        """Project forward over the same span the snapshot covers."""
        span = timestamps[-1] - timestamps[0] if len(timestamps) >= 2 else 0.0
        if not math.isfinite(span) or span <= 0:
            span = self.config.default_time_horizon_seconds
        return timedelta(seconds=span)

    @staticmethod
    def _volume_ratio(volumes: Sequence[float]) -> float:
        half = len(volumes) // 2
        if half == 0:
            return 1.0
        return ratio(volumes[half:], volumes[:half])


def detect_patterns(snapshot: Any, config: Optional[ClassifierConfig] = None) -> List[DetectedPattern]:
    """Classify a snapshot with a throwaway classifier."""
    return PatternClassifier(config).detect_patterns(snapshot)
