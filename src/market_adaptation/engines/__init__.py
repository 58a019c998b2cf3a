"""
Market Adaptation Engines

- PatternClassifier: trend, volatility spike and mean reversion/range detection
- AdaptationController: performance and pattern triggered parameter retuning
- MarketAdaptationEngine: locked facade over classifier, controller and audit store
"""

from .classifier import PatternClassifier, detect_patterns
from .controller import PATTERN_ALIGNMENT, AdaptationController, TriggerDecision
from .engine import MarketAdaptationEngine

__all__ = [
    "PatternClassifier",
    "detect_patterns",
    "AdaptationController",
    "TriggerDecision",
    "PATTERN_ALIGNMENT",
    "MarketAdaptationEngine",
]
