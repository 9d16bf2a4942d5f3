"""
Sample accounting for the fusion core.

Every raw sample that does not reach a fused output is counted under
exactly one reject reason. Accept paths bump plain counters, and per-cycle
values (Kalman gain, fused accuracy, motion confidence) go into bounded
rolling series.

Reject reasons come in two groups:
- GUARD_REASONS: the outlier guard refused the sample
- ENGINE_REASONS: the orchestrator discarded it before fusion
"""

import logging
import threading
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Iterable, List, Optional

import numpy as np

logger = logging.getLogger(__name__)


GUARD_REASONS = (
    'non_finite',
    'invalid_coordinates',
    'accuracy_exceeded',
    'speed_exceeded',
    'implied_speed_exceeded',
)

ENGINE_REASONS = (
    'source_disabled',
    'stale',
    'queue_full',
)

DROP_REASONS = {
    'non_finite': 'Latitude or longitude is NaN / infinite',
    'invalid_coordinates': 'Latitude or longitude out of range',
    'accuracy_exceeded': 'Reported accuracy above threshold',
    'speed_exceeded': 'Reported speed above threshold',
    'implied_speed_exceeded': 'Jump from last fused position implies impossible speed',
    'source_disabled': 'Sample from a disabled provider',
    'stale': 'Pending sample older than retention window',
    'queue_full': 'Bounded pending buffer overflow',
}

# Counters reported even before their first increment
STANDARD_COUNTERS = (
    'samples_in',
    'samples_received',
    'samples_accepted',
    'outlier_rejections',
    'fusion_cycles',
    'fused_locations',
    'sensor_samples',
    'motion_analyses',
    'transitions_accepted',
    'transitions_rejected',
)


@dataclass(frozen=True)
class SeriesSummary:
    """Summary of one rolling series."""

    count: int
    mean: float
    minimum: float
    maximum: float
    p95: float
    last: float

    @classmethod
    def of(cls, values: Iterable[float]) -> 'SeriesSummary':
        arr = np.fromiter(values, dtype=float)
        return cls(
            count=int(arr.size),
            mean=float(arr.mean()),
            minimum=float(arr.min()),
            maximum=float(arr.max()),
            p95=float(np.percentile(arr, 95)),
            last=float(arr[-1]),
        )

    def to_dict(self) -> dict:
        return {
            'count': self.count,
            'mean': self.mean,
            'min': self.minimum,
            'max': self.maximum,
            'p95': self.p95,
            'last': self.last,
        }


@dataclass(frozen=True)
class MetricsSnapshot:
    """
    Point-in-time copy of a collector.

    Snapshots subtract, so a component can report activity since its own
    baseline without resetting a collector it shares:

        baseline = metrics.snapshot()
        ...
        recent = metrics.snapshot().since(baseline)
    """

    counters: Dict[str, int] = field(default_factory=dict)
    drops: Dict[str, int] = field(default_factory=dict)
    series: Dict[str, SeriesSummary] = field(default_factory=dict)

    @property
    def total_dropped(self) -> int:
        return sum(self.drops.values())

    def counter(self, name: str) -> int:
        return self.counters.get(name, 0)

    def drops_for(self, reasons: Iterable[str]) -> Dict[str, int]:
        """Reject counts restricted to reasons (zeros included)."""
        return {reason: self.drops.get(reason, 0) for reason in reasons}

    def since(self, baseline: 'MetricsSnapshot') -> 'MetricsSnapshot':
        """Counter and reject deltas against an earlier snapshot; series are kept as is."""
        return MetricsSnapshot(
            counters={k: v - baseline.counters.get(k, 0) for k, v in self.counters.items()},
            drops={k: v - baseline.drops.get(k, 0) for k, v in self.drops.items()},
            series=dict(self.series),
        )

    def to_dict(self) -> dict:
        return {
            'counters': dict(self.counters),
            'drops': dict(self.drops),
            'total_dropped': self.total_dropped,
            'series': {name: s.to_dict() for name, s in self.series.items()},
        }

    def report_lines(self) -> List[str]:
        """Human-readable report, one line per entry."""
        lines = ["Counters:"]
        lines += [f"  {name:24s} {value:8d}" for name, value in sorted(self.counters.items())]

        dropped = self.total_dropped
        lines.append(f"Rejected samples: {dropped}")
        for reason, count in sorted(self.drops.items()):
            if count:
                lines.append(f"  {reason:24s} {count:8d} ({100.0 * count / dropped:5.1f}%)")

        if self.series:
            lines.append("Series:")
            for name, s in sorted(self.series.items()):
                lines.append(
                    f"  {name:24s} n={s.count} mean={s.mean:.3f} "
                    f"p95={s.p95:.3f} last={s.last:.3f}"
                )
        return lines


class MetricsCollector:
    """
    Thread-safe sample accounting.

    One collector per LocationEngine; its fusion engine, outlier guard and
    motion engine all write into it.

    Usage:
        metrics = MetricsCollector()
        metrics.increment('samples_in')
        metrics.increment_drop('accuracy_exceeded')
        metrics.observe('kalman_gain', 0.42)

        snap = metrics.snapshot()
        print(snap.drops_for(GUARD_REASONS), snap.series['kalman_gain'].mean)
    """

    DROP_REASONS = DROP_REASONS

    def __init__(self, series_window: int = 1000):
        """
        Args:
            series_window: Observations kept per rolling series
        """
        if series_window < 1:
            raise ValueError(f"series_window must be >= 1, got {series_window}")

        self.series_window = series_window
        self._lock = threading.Lock()
        self._counters: Counter = Counter({name: 0 for name in STANDARD_COUNTERS})
        self._drops: Counter = Counter({reason: 0 for reason in DROP_REASONS})
        self._series: Dict[str, Deque[float]] = {}

    def increment(self, name: str, value: int = 1):
        with self._lock:
            self._counters[name] += value

    def increment_drop(self, reason: str, value: int = 1):
        """
        Count value discarded samples under reason.

        Unknown reasons are logged and still counted.
        """
        if reason not in DROP_REASONS:
            logger.warning(f"Unknown reject reason '{reason}'")
        with self._lock:
            self._drops[reason] += value

    def get_counter(self, name: str) -> int:
        with self._lock:
            return self._counters.get(name, 0)

    def get_drop_count(self, reason: str) -> int:
        with self._lock:
            return self._drops.get(reason, 0)

    def observe(self, name: str, value: float):
        """Append value to a rolling series, evicting the oldest past the window."""
        with self._lock:
            series = self._series.get(name)
            if series is None:
                series = deque(maxlen=self.series_window)
                self._series[name] = series
            series.append(float(value))

    def summarize(self, name: str) -> Optional[SeriesSummary]:
        """Summary of one series, or None before its first observation."""
        with self._lock:
            values = list(self._series.get(name, ()))
        return SeriesSummary.of(values) if values else None

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            counters = dict(self._counters)
            drops = dict(self._drops)
            series = {name: list(values) for name, values in self._series.items() if values}
        return MetricsSnapshot(
            counters=counters,
            drops=drops,
            series={name: SeriesSummary.of(values) for name, values in series.items()},
        )
