from __future__ import annotations

from dataclasses import dataclass, asdict, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .errors import ConfigError
from .types import sha256_hex, stable_json

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "contracts" / "adaptation.yaml"


@dataclass(frozen=True)
class ClassifierConfig:
    min_points: int = 3
    trend_slope_threshold: float = 0.003
    trend_strength_scale: float = 0.015
    trend_risk_reward: float = 2.0
    volatility_window: int = 5
    volatility_multiplier: float = 1.5
    volatility_floor: float = 0.005
    range_threshold: float = 0.02
    mean_window: int = 5
    min_mean_crossings: int = 2
    max_indicator_adjustment: float = 0.1
    default_time_horizon_seconds: int = 86400


@dataclass(frozen=True)
class ControllerConfig:
    confidence_threshold: float = 0.6
    adaptation_step: float = 0.1
    min_stop_loss: float = 0.005
    enable_real_time_adaptation: bool = True


@dataclass(frozen=True)
class RetentionConfig:
    max_patterns: Optional[int] = None
    max_history: Optional[int] = None


@dataclass(frozen=True)
class AdaptationConfig:
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    controller: ControllerConfig = field(default_factory=ControllerConfig)
    retention: RetentionConfig = field(default_factory=RetentionConfig)
    source: Optional[str] = None

    @staticmethod
    def default() -> "AdaptationConfig":
        return AdaptationConfig()

    @property
    def config_hash(self) -> str:
        doc = {
            "classifier": asdict(self.classifier),
            "controller": asdict(self.controller),
            "retention": asdict(self.retention),
        }
        return sha256_hex(stable_json(doc))


def _require(condition: bool, msg: str) -> None:
    """Fail-closed helper for config validation."""
    if not condition:
        raise ConfigError(msg)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _section(doc: Dict[str, Any], name: str, cls: type) -> Any:
    raw = doc.get(name) or {}
    _require(isinstance(raw, dict), f"{name} must be a mapping")

    known = {f.name: f for f in fields(cls)}
    unknown = sorted(set(raw) - set(known))
    _require(not unknown, f"{name}: unknown keys {unknown}")

    defaults = cls()
    values: Dict[str, Any] = {}
    for key, value in raw.items():
        expected = getattr(defaults, key)
        if isinstance(expected, bool):
            _require(isinstance(value, bool), f"{name}.{key} must be a boolean")
        elif value is None:
            _require(name == "retention", f"{name}.{key} must not be null")
        elif isinstance(expected, int) or (expected is None and name == "retention"):
            _require(isinstance(value, int) and not isinstance(value, bool),
                     f"{name}.{key} must be an integer")
        else:
            _require(_is_number(value), f"{name}.{key} must be a number")
            value = float(value)
        values[key] = value
    return cls(**values)


def normalize_config(doc: Dict[str, Any], source: Optional[str] = None) -> AdaptationConfig:
    """Validate a parsed config document into an AdaptationConfig."""
    _require(isinstance(doc, dict), "adaptation config must be a mapping")
    unknown = sorted(set(doc) - {"classifier", "controller", "retention"})
    _require(not unknown, f"unknown config sections {unknown}")

    classifier = _section(doc, "classifier", ClassifierConfig)
    controller = _section(doc, "controller", ControllerConfig)
    retention = _section(doc, "retention", RetentionConfig)

    _require(classifier.min_points >= 3, "classifier.min_points must be >= 3")
    _require(classifier.trend_slope_threshold > 0, "classifier.trend_slope_threshold must be > 0")
    _require(classifier.trend_strength_scale > 0, "classifier.trend_strength_scale must be > 0")
    _require(classifier.volatility_window >= 2, "classifier.volatility_window must be >= 2")
    _require(classifier.volatility_multiplier > 1.0, "classifier.volatility_multiplier must be > 1")
    _require(classifier.volatility_floor > 0, "classifier.volatility_floor must be > 0")
    _require(0 < classifier.range_threshold < 1, "classifier.range_threshold must be in (0, 1)")
    _require(classifier.mean_window >= 1, "classifier.mean_window must be >= 1")
    _require(0 <= classifier.max_indicator_adjustment <= 0.1,
             "classifier.max_indicator_adjustment must be in [0, 0.1]")
    _require(classifier.default_time_horizon_seconds > 0,
             "classifier.default_time_horizon_seconds must be > 0")

    _require(0 <= controller.confidence_threshold <= 1, "controller.confidence_threshold must be in [0, 1]")
    _require(0 < controller.adaptation_step < 1, "controller.adaptation_step must be in (0, 1)")
    _require(controller.min_stop_loss >= 0, "controller.min_stop_loss must be >= 0")

    for key in ("max_patterns", "max_history"):
        value = getattr(retention, key)
        _require(value is None or value > 0, f"retention.{key} must be null or > 0")

    return AdaptationConfig(
        classifier=classifier,
        controller=controller,
        retention=retention,
        source=source,
    )


def load_config(path: Optional[str] = None) -> AdaptationConfig:
    """Load and validate an adaptation config YAML file.

    Args:
        path: YAML file to read; the packaged contracts/adaptation.yaml when omitted

    Returns:
        Validated, frozen AdaptationConfig
    """
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    with config_path.open("r", encoding="utf-8") as f:
        doc = yaml.safe_load(f) or {}
    return normalize_config(doc, source=str(config_path))
