from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from market_adaptation.core.config import AdaptationConfig
from market_adaptation.core.models import DetectedPattern
from market_adaptation.core.types import sha256_hex, stable_json
from market_adaptation.engines.classifier import PatternClassifier

# Fields that differ between runs over identical input
VOLATILE_FIELDS = ("id", "detected_at")


@dataclass
class ReplayResult:
    config_hash: str
    snapshots_in: int
    patterns_out: int
    output_fingerprint: str
    notes: Dict[str, Any] = field(default_factory=dict)


def pattern_fingerprint(patterns: List[DetectedPattern]) -> str:
    docs = []
    for p in patterns:
        doc = p.to_payload()
        for key in VOLATILE_FIELDS:
            doc.pop(key, None)
        docs.append(doc)
    return sha256_hex(stable_json(docs))


def replay_snapshots(
    snapshots: Iterable[Any],
    config: Optional[AdaptationConfig] = None,
) -> ReplayResult:
    """Classify every snapshot in order and fingerprint the combined output.

    Identical snapshots under an identical config give an identical
    fingerprint.
    """
    cfg = config or AdaptationConfig.default()
    classifier = PatternClassifier(cfg.classifier)

    n_in = 0
    out: List[DetectedPattern] = []
    per_type: Dict[str, int] = {}
    for snap in snapshots:
        n_in += 1
        for p in classifier.detect_patterns(snap):
            out.append(p)
            per_type[p.type.value] = per_type.get(p.type.value, 0) + 1

    return ReplayResult(
        config_hash=cfg.config_hash,
        snapshots_in=n_in,
        patterns_out=len(out),
        output_fingerprint=pattern_fingerprint(out),
        notes={"patterns_by_type": per_type},
    )
