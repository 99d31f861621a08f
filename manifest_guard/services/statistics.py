"""
Thread-safe validation statistics.

One ``ValidationStatisticsTracker`` is shared by every pipeline invocation
that was handed it. Only counter and frequency-map updates happen under the
lock; validation work never does.
"""

import threading
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Tuple

from manifest_guard.models.result import ValidationResult


@dataclass(frozen=True)
class ErrorFrequency:
    message: str
    count: int


@dataclass(frozen=True)
class StatisticsSnapshot:
    """Immutable view of the tracker at one point in time."""
    total: int
    succeeded: int
    failed: int
    success_rate: float
    top_errors: Tuple[ErrorFrequency, ...]
    average_processing_time_ms: float = 0.0
    cache_hits: int = 0

    def to_dict(self) -> Dict[str, object]:
        return {
            'total': self.total,
            'success': self.succeeded,
            'failure': self.failed,
            'success_rate': self.success_rate,
            'average_processing_time_ms': self.average_processing_time_ms,
            'cache_hits': self.cache_hits,
            'top_errors': [
                {'message': entry.message, 'count': entry.count} for entry in self.top_errors
            ],
        }


class ValidationStatisticsTracker:
    """
    Counts validation outcomes, processing time and recurring error messages.

    Error messages are counted in a dict whose insertion order records the
    first time each message was seen; ranking sorts by count with a stable
    sort so ties keep that order.
    """

    def __init__(self, top_n: int = 5):
        self.top_n = top_n
        self._lock = threading.Lock()
        self._total = 0
        self._succeeded = 0
        self._failed = 0
        self._cache_hits = 0
        self._processing_time_ms = 0.0
        self._error_counts: Dict[str, int] = {}

    def record(self, result: ValidationResult) -> None:
        """Record one validation outcome."""
        self.record_outcome(
            result.success,
            result.errors,
            processing_time_ms=result.processing_time_ms,
            cached=result.cached,
        )

    def record_outcome(
        self,
        success: bool,
        errors: Iterable[str] = (),
        processing_time_ms: float = 0.0,
        cached: bool = False,
    ) -> None:
        rendered = [] if success else list(errors)
        with self._lock:
            self._total += 1
            self._processing_time_ms += processing_time_ms
            if cached:
                self._cache_hits += 1
            if success:
                self._succeeded += 1
                return
            self._failed += 1
            for message in rendered:
                self._error_counts[message] = self._error_counts.get(message, 0) + 1

    def snapshot(self, top_n: Optional[int] = None) -> StatisticsSnapshot:
        limit = self.top_n if top_n is None else top_n
        with self._lock:
            total = self._total
            succeeded = self._succeeded
            failed = self._failed
            cache_hits = self._cache_hits
            processing_time_ms = self._processing_time_ms
            counts = list(self._error_counts.items())

        ranked = sorted(counts, key=lambda item: item[1], reverse=True)[:limit]
        return StatisticsSnapshot(
            total=total,
            succeeded=succeeded,
            failed=failed,
            success_rate=(succeeded / total * 100.0) if total else 0.0,
            top_errors=tuple(ErrorFrequency(message, count) for message, count in ranked),
            average_processing_time_ms=(processing_time_ms / total) if total else 0.0,
            cache_hits=cache_hits,
        )

    def reset(self) -> None:
        """Clear all counters. Intended for test isolation."""
        with self._lock:
            self._total = 0
            self._succeeded = 0
            self._failed = 0
            self._cache_hits = 0
            self._processing_time_ms = 0.0
            self._error_counts.clear()


__all__ = ['ErrorFrequency', 'StatisticsSnapshot', 'ValidationStatisticsTracker']
