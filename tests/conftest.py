from __future__ import annotations

import pytest

from market_adaptation.core.config import AdaptationConfig
from market_adaptation.engines.engine import MarketAdaptationEngine


def make_snapshot(prices, asset="BTC", timeframe="1h", **extra):
    n = len(prices)
    snap = {
        "prices": list(prices),
        "volumes": [1000.0 + 10 * i for i in range(n)],
        "timestamps": [1_700_000_000.0 + 3600 * i for i in range(n)],
        "asset": asset,
        "timeframe": timeframe,
    }
    snap.update(extra)
    return snap


UPTREND = [50000.0 + 500 * i for i in range(10)]
DOWNTREND = list(reversed(UPTREND))
OSCILLATING = [100.0, 101.0] * 5
SPIKE = [100.0, 100.1, 100.2, 100.1, 100.2, 100.1, 104.0, 99.0, 105.0, 98.0, 104.0]


@pytest.fixture
def config():
    return AdaptationConfig.default()


@pytest.fixture
def engine(config):
    return MarketAdaptationEngine(config)


@pytest.fixture
def uptrend_snapshot():
    return make_snapshot(UPTREND)


@pytest.fixture
def trend_strategy_spec():
    return {
        "name": "BTC trend follower",
        "type": "trend_following",
        "base_parameters": {"position_size": 0.05, "stop_loss": 0.02, "entry_threshold": 0.5},
        "performance_targets": {"min_sharpe_ratio": 1.0, "max_drawdown": 0.15, "min_win_rate": 0.4},
        "risk_limits": {"max_position_size": 0.1, "max_leverage": 3.0, "stop_loss_percentage": 0.05},
    }
