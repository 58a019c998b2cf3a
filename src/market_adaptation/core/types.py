from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any
import json
import hashlib
import uuid


class PatternType(Enum):
    TREND = "trend"
    MEAN_REVERSION = "mean_reversion"
    VOLATILITY_SPIKE = "volatility_spike"
    RANGE = "range"


class Direction(Enum):
    UP = "up"
    DOWN = "down"
    SIDEWAYS = "sideways"


class StrategyType(Enum):
    TREND_FOLLOWING = "trend_following"
    MEAN_REVERSION = "mean_reversion"
    MOMENTUM = "momentum"
    BREAKOUT = "breakout"
    CUSTOM = "custom"


class AdaptationType(Enum):
    STRATEGY_ADAPTED = "strategy_adapted"
    STRATEGY_ADAPTED_WITH_FALLBACK = "strategy_adapted_with_fallback"


class TriggerKind(Enum):
    PERFORMANCE = "performance"
    PATTERN = "pattern"


def stable_json(obj: Any) -> str:
    # Deterministic JSON serialization
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def sha256_hex(s: str) -> str:
    return hashlib.sha256(s.encode("utf-8")).hexdigest()


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
