"""Error types raised across the engine boundary.

Malformed market data is never an error (it degrades to an empty pattern
list), so the taxonomy only covers registry lookups, validation and config.
"""

from __future__ import annotations


class StrategyNotFoundError(LookupError):
    """Unknown strategy id on status update, metric push or metric query."""

    def __init__(self, strategy_id: str, what: str = "strategy"):
        self.strategy_id = strategy_id
        super().__init__(f"{what} not found: {strategy_id}")


class StrategyValidationError(ValueError):
    """Registration or metrics payload is missing required fields."""


class ConfigError(ValueError):
    """Adaptation config failed validation."""
