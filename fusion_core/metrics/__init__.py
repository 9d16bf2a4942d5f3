"""
Metrics Module: sample accounting for the fusion core.

- Counters: samples_in, samples_received, fused_locations, transitions, etc.
- Reject reason codes for every discarded sample, grouped into guard and
  engine reasons
- Rolling series: kalman_gain, fused_accuracy_m, motion_confidence

There is no process-wide collector: each LocationEngine owns one and hands
it to its engines.

Usage:
    from fusion_core.metrics import MetricsCollector

    metrics = MetricsCollector()
    metrics.increment('samples_received')
    metrics.increment_drop('invalid_coordinates')
    metrics.observe('kalman_gain', 0.42)
"""

from .counters import (
    DROP_REASONS,
    ENGINE_REASONS,
    GUARD_REASONS,
    MetricsCollector,
    MetricsSnapshot,
    SeriesSummary,
)

__all__ = [
    'DROP_REASONS',
    'ENGINE_REASONS',
    'GUARD_REASONS',
    'MetricsCollector',
    'MetricsSnapshot',
    'SeriesSummary',
]
