from __future__ import annotations

import copy
import logging
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, Iterable, List, Mapping, Optional

from market_adaptation.core.models import AdaptationRecord, DetectedPattern
from market_adaptation.core.types import Direction, PatternType

logger = logging.getLogger(__name__)

PATTERN_FILTER_KEYS = frozenset({
    "type", "asset", "timeframe", "direction", "min_confidence", "min_strength", "since", "predicate",
})


class AuditStore:
    """Append-only adaptation log plus the cache of recently detected patterns.

    Not thread-safe on its own; the engine serializes access with its lock.
    Entries are copied on the way in and on the way out, so nothing a caller
    holds aliases the log.
    Retention is unbounded unless max_patterns / max_history are set, in which
    case the oldest entries are evicted first.
    """

    def __init__(self, max_patterns: Optional[int] = None, max_history: Optional[int] = None):
        self._patterns: Deque[DetectedPattern] = deque(maxlen=max_patterns)
        self._history: Deque[AdaptationRecord] = deque(maxlen=max_history)
        self._record_ids: set = set()

    def __len__(self) -> int:
        return len(self._history)

    def append(self, record: AdaptationRecord) -> bool:
        """Returns True if appended, False if a record with this id already exists."""
        if record.id in self._record_ids:
            return False
        if self._history.maxlen is not None and len(self._history) == self._history.maxlen:
            evicted = self._history[0]
            self._record_ids.discard(evicted.id)
        self._history.append(copy.deepcopy(record))
        self._record_ids.add(record.id)
        return True

    def record_patterns(self, patterns: Iterable[DetectedPattern]) -> int:
        n = 0
        for p in patterns:
            self._patterns.append(copy.deepcopy(p))
            n += 1
        return n

    def get_adaptation_history(self, limit: int = 0) -> List[AdaptationRecord]:
        """Most recent first; limit=0 returns everything."""
        if limit < 0:
            raise ValueError(f"limit must be >= 0, got {limit}")
        out = list(reversed(self._history))
        if limit:
            out = out[:limit]
        return copy.deepcopy(out)

    def records_for_strategy(self, strategy_id: str) -> List[AdaptationRecord]:
        """Chronological records for one strategy."""
        return copy.deepcopy([r for r in self._history if r.strategy_id == strategy_id])

    def get_detected_patterns(self, filters: Optional[Mapping[str, Any]] = None) -> List[DetectedPattern]:
        """
        Linear scan over the cached patterns.

        Args:
            filters: any of type, asset, timeframe, direction, min_confidence,
                min_strength, since (datetime) and predicate (callable);
                combined with AND

        Returns:
            Matching patterns, highest confidence first, ties most recent first
        """
        filters = dict(filters or {})
        unknown = sorted(set(filters) - PATTERN_FILTER_KEYS)
        if unknown:
            raise ValueError(f"unknown pattern filter(s): {unknown}")

        match = _compile_filters(filters)
        # predicates only ever see copies
        newest_first = [p for p in copy.deepcopy(list(reversed(self._patterns))) if match(p)]
        # sorted() is stable, so recency order survives within equal confidence
        return sorted(newest_first, key=lambda p: p.confidence, reverse=True)


def _as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken as UTC."""
    if not isinstance(value, datetime):
        raise ValueError(f"since must be a datetime, got {type(value).__name__}")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _compile_filters(filters: Dict[str, Any]) -> Callable[[DetectedPattern], bool]:
    checks: List[Callable[[DetectedPattern], bool]] = []

    if filters.get("type") is not None:
        wanted_type = PatternType(filters["type"])
        checks.append(lambda p: p.type is wanted_type)
    if filters.get("direction") is not None:
        wanted_dir = Direction(filters["direction"])
        checks.append(lambda p: p.direction is wanted_dir)
    if filters.get("asset") is not None:
        asset = filters["asset"]
        checks.append(lambda p: p.asset == asset)
    if filters.get("timeframe") is not None:
        timeframe = filters["timeframe"]
        checks.append(lambda p: p.timeframe == timeframe)
    if filters.get("min_confidence") is not None:
        min_conf = float(filters["min_confidence"])
        checks.append(lambda p: p.confidence >= min_conf)
    if filters.get("min_strength") is not None:
        min_strength = float(filters["min_strength"])
        checks.append(lambda p: p.strength >= min_strength)
    if filters.get("since") is not None:
        since = _as_utc(filters["since"])
        checks.append(lambda p: p.detected_at is not None and _as_utc(p.detected_at) >= since)
    if filters.get("predicate") is not None:
        checks.append(filters["predicate"])

    return lambda p: all(check(p) for check in checks)
