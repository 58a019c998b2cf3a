"""Market pattern detection and bounded strategy adaptation."""

from .core.config import AdaptationConfig, load_config
from .core.errors import ConfigError, StrategyNotFoundError, StrategyValidationError
from .engines.engine import MarketAdaptationEngine

__version__ = "0.1.0"

__all__ = [
    "AdaptationConfig",
    "ConfigError",
    "MarketAdaptationEngine",
    "StrategyNotFoundError",
    "StrategyValidationError",
    "load_config",
]
