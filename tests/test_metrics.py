"""
Unit tests for metrics module.

Tests cover:
- Counters (single-threaded and multi-threaded)
- Reject reason accounting and reason groups
- Rolling series and their summaries
- Snapshots, baselines and the text report
- Per-engine collectors wired through fusion quality and engine metrics
"""

import logging
import threading

import pytest

from fusion_core import LocationEngine
from fusion_core.config import EngineConfig
from fusion_core.metrics import (
    DROP_REASONS,
    ENGINE_REASONS,
    GUARD_REASONS,
    MetricsCollector,
    MetricsSnapshot,
)
from fusion_core.proto import SourceType


class TestCounters:
    """Tests for plain counters."""

    def test_standard_counters_start_at_zero(self):
        collector = MetricsCollector()
        snapshot = collector.snapshot()

        assert snapshot.counters['samples_received'] == 0
        assert snapshot.counters['transitions_accepted'] == 0
        assert collector.get_counter('unknown_counter') == 0

    def test_increment(self):
        collector = MetricsCollector()

        collector.increment('samples_in')
        collector.increment('samples_in', 5)

        assert collector.get_counter('samples_in') == 6

    def test_invalid_series_window(self):
        with pytest.raises(ValueError):
            MetricsCollector(series_window=0)


# =============================================================================
# Test Reject Reasons
# =============================================================================


class TestRejectReasons:
    """Every discarded sample is counted under one reason."""

    def test_reason_groups_cover_all_codes(self):
        assert set(GUARD_REASONS) | set(ENGINE_REASONS) == set(DROP_REASONS)
        assert not set(GUARD_REASONS) & set(ENGINE_REASONS)

    def test_reasons_start_at_zero(self):
        snapshot = MetricsCollector().snapshot()

        assert snapshot.drops == {reason: 0 for reason in DROP_REASONS}
        assert snapshot.total_dropped == 0

    def test_increment_drop(self):
        collector = MetricsCollector()

        collector.increment_drop('non_finite', 3)
        collector.increment_drop('implied_speed_exceeded', 5)
        collector.increment_drop('stale', 2)

        snapshot = collector.snapshot()
        assert collector.get_drop_count('implied_speed_exceeded') == 5
        assert snapshot.total_dropped == 10
        assert snapshot.drops_for(ENGINE_REASONS) == {
            'source_disabled': 0,
            'stale': 2,
            'queue_full': 0,
        }

    def test_unknown_reason_logged_and_counted(self, caplog):
        collector = MetricsCollector()

        with caplog.at_level(logging.WARNING, logger='fusion_core.metrics.counters'):
            collector.increment_drop('cosmic_ray')

        assert 'cosmic_ray' in caplog.text
        assert collector.get_drop_count('cosmic_ray') == 1
        assert collector.snapshot().total_dropped == 1


# =============================================================================
# Test Rolling Series
# =============================================================================


class TestSeries:
    """Tests for rolling series."""

    def test_summary(self):
        collector = MetricsCollector()

        for gain in (0.2, 0.5, 0.8):
            collector.observe('kalman_gain', gain)

        summary = collector.summarize('kalman_gain')
        assert summary.count == 3
        assert summary.mean == pytest.approx(0.5)
        assert summary.minimum == 0.2
        assert summary.maximum == 0.8
        assert summary.last == 0.8

    def test_unknown_series(self):
        assert MetricsCollector().summarize('nonexistent') is None

    def test_percentile(self):
        collector = MetricsCollector()
        for i in range(100):
            collector.observe('fused_accuracy_m', float(i))

        summary = collector.summarize('fused_accuracy_m')

        assert summary.p95 == pytest.approx(94.05)

    def test_window_keeps_latest(self):
        collector = MetricsCollector(series_window=10)
        for i in range(25):
            collector.observe('motion_confidence', float(i))

        summary = collector.summarize('motion_confidence')

        assert summary.count == 10
        assert summary.minimum == 15.0
        assert summary.last == 24.0


# =============================================================================
# Test Snapshots
# =============================================================================


class TestSnapshot:
    """Tests for snapshots and baselines."""

    def test_snapshot_is_a_copy(self):
        collector = MetricsCollector()

        collector.increment('samples_in', 10)
        first = collector.snapshot()
        collector.increment('samples_in', 5)

        assert first.counter('samples_in') == 10
        assert collector.snapshot().counter('samples_in') == 15

    def test_since_baseline(self):
        collector = MetricsCollector()
        collector.increment('samples_received', 4)
        collector.increment_drop('accuracy_exceeded')
        baseline = collector.snapshot()

        collector.increment('samples_received', 3)
        collector.increment_drop('accuracy_exceeded', 2)
        recent = collector.snapshot().since(baseline)

        assert recent.counter('samples_received') == 3
        assert recent.drops['accuracy_exceeded'] == 2
        assert recent.total_dropped == 2

    def test_empty_snapshot(self):
        snapshot = MetricsSnapshot()

        assert snapshot.total_dropped == 0
        assert snapshot.drops_for(GUARD_REASONS) == {reason: 0 for reason in GUARD_REASONS}

    def test_to_dict(self):
        collector = MetricsCollector()
        collector.increment_drop('queue_full')
        collector.observe('kalman_gain', 0.3)

        data = collector.snapshot().to_dict()

        assert data['total_dropped'] == 1
        assert data['drops']['queue_full'] == 1
        assert data['series']['kalman_gain']['count'] == 1

    def test_report_lines(self):
        collector = MetricsCollector()
        collector.increment('samples_in', 100)
        collector.increment_drop('stale', 3)
        collector.increment_drop('queue_full', 1)
        collector.observe('kalman_gain', 0.4)

        report = '\n'.join(collector.snapshot().report_lines())

        assert 'samples_in' in report
        assert 'Rejected samples: 4' in report
        assert 'stale' in report and '75.0%' in report
        assert 'kalman_gain' in report
        # Reasons that never fired are not listed
        assert 'non_finite' not in report


# =============================================================================
# Test Thread Safety
# =============================================================================


class TestThreadSafety:
    """Tests for concurrent writers."""

    def test_concurrent_increment(self):
        collector = MetricsCollector()
        num_threads = 10
        increments_per_thread = 1000

        def worker():
            for _ in range(increments_per_thread):
                collector.increment('samples_in')

        threads = [threading.Thread(target=worker) for _ in range(num_threads)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert collector.get_counter('samples_in') == num_threads * increments_per_thread

    def test_concurrent_drops_and_series(self):
        collector = MetricsCollector(series_window=100000)
        num_threads = 5
        increments_per_thread = 200

        def worker(reason: str):
            for _ in range(increments_per_thread):
                collector.increment_drop(reason)
                collector.observe('kalman_gain', 0.5)

        threads = [
            threading.Thread(target=worker, args=(reason,))
            for reason in ENGINE_REASONS
            for _ in range(num_threads)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        expected = num_threads * increments_per_thread
        snapshot = collector.snapshot()
        assert snapshot.drops_for(ENGINE_REASONS) == {reason: expected for reason in ENGINE_REASONS}
        assert snapshot.series['kalman_gain'].count == expected * len(ENGINE_REASONS)


# =============================================================================
# Test Engine Wiring
# =============================================================================


class TestEngineCollectors:
    """Each LocationEngine owns a collector its engines report through."""

    def test_engines_do_not_share_metrics(self, make_sample):
        first = LocationEngine()
        second = LocationEngine()

        first.on_raw_sample(make_sample())

        assert first.metrics is not second.metrics
        assert first.metrics.get_counter('samples_in') == 1
        assert second.metrics.get_counter('samples_in') == 0

    def test_engines_share_collector_with_owner(self, make_sample):
        engine = LocationEngine()
        engine.on_raw_sample(make_sample())
        engine.run_fusion_cycle()

        assert engine.fusion_engine.metrics is engine.metrics
        assert engine.motion_engine.metrics is engine.metrics
        assert engine.metrics.get_counter('fused_locations') == 1

    def test_guard_rejects_reach_quality_metrics(self, make_sample):
        engine = LocationEngine()
        engine.on_raw_sample(make_sample(accuracy=500.0))
        engine.on_raw_sample(make_sample(latitude=95.0))
        engine.on_raw_sample(make_sample())
        engine.run_fusion_cycle()

        quality = engine.get_quality_metrics()
        assert quality.outlier_count == 2
        assert quality.outlier_rate == pytest.approx(2 / 3)
        assert quality.rejections['accuracy_exceeded'] == 1
        assert quality.rejections['invalid_coordinates'] == 1
        assert set(quality.rejections) == set(GUARD_REASONS)

    def test_engine_metrics_carry_accounting(self, make_sample):
        engine = LocationEngine(EngineConfig(enable_network_location=False))
        engine.on_raw_sample(make_sample(source=SourceType.NETWORK))
        engine.on_raw_sample(make_sample(latitude=95.0))
        engine.run_fusion_cycle()

        accounting = engine.get_metrics().accounting
        assert accounting.drops['source_disabled'] == 1
        assert accounting.drops['invalid_coordinates'] == 1
        assert accounting.total_dropped == 2
        assert engine.get_metrics().to_dict()['accounting']['total_dropped'] == 2
