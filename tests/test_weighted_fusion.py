"""
Unit tests for weighted multi-source fusion.

Tests cover:
- Weight ordering by accuracy, age, source and quality
- Single-sample identity
- Harmonic-mean accuracy and weighted means
- Degenerate zero-weight case
"""

import math

import pytest

from fusion_core.config import FusionConfig
from fusion_core.localization import combine, location_weight
from fusion_core.proto import LocationQuality, MotionState, SourceType


# =============================================================================
# Test Weights
# =============================================================================


class TestLocationWeight:
    """Tests for the per-sample weight."""

    def test_accuracy_ordering(self, make_sample):
        """weight(5m) > weight(10m) > weight(50m)"""
        config = FusionConfig()
        w5, w10, w50 = (
            location_weight(make_sample(accuracy=a), 1000.0, config) for a in (5.0, 10.0, 50.0)
        )

        assert w5 > w10 > w50 > 0

    def test_accuracy_ordering_with_fixed_quality(self, make_sample):
        """Ordering holds from the accuracy term alone."""
        config = FusionConfig()
        weights = [
            location_weight(make_sample(accuracy=a, quality=LocationQuality.GOOD), 1000.0, config)
            for a in (5.0, 10.0, 50.0)
        ]

        assert weights[0] > weights[1] > weights[2]

    def test_formula(self, make_sample):
        config = FusionConfig()
        sample = make_sample(accuracy=10.0, timestamp=990.0, source=SourceType.NETWORK)

        expected = (
            math.exp(-10.0 / 30.0)
            * math.exp(-10.0 / 60.0)
            * 0.7
            * (int(LocationQuality.GOOD) + 1) / 6
        )
        assert location_weight(sample, 1000.0, config) == pytest.approx(expected)

    def test_older_sample_weighs_less(self, make_sample):
        config = FusionConfig()
        fresh = location_weight(make_sample(timestamp=1000.0), 1000.0, config)
        old = location_weight(make_sample(timestamp=940.0), 1000.0, config)

        assert fresh > old

    def test_future_sample_has_zero_age(self, make_sample):
        config = FusionConfig()

        assert location_weight(make_sample(timestamp=1005.0), 1000.0, config) == \
            location_weight(make_sample(timestamp=1000.0), 1000.0, config)

    def test_source_ordering(self, make_sample):
        config = FusionConfig()
        gps, network, passive = (
            location_weight(make_sample(source=s), 1000.0, config)
            for s in (SourceType.GPS, SourceType.NETWORK, SourceType.PASSIVE)
        )

        assert gps > network > passive

    def test_non_finite_weight_is_zero(self, make_sample):
        assert location_weight(make_sample(accuracy=math.nan), 1000.0, FusionConfig()) == 0.0


# =============================================================================
# Test Combine
# =============================================================================


class TestCombine:
    """Tests for combining a fusion cycle's samples."""

    def test_empty_returns_none(self):
        assert combine([], 1000.0) is None

    def test_single_sample_identity(self, make_sample):
        sample = make_sample(
            latitude=22.31, longitude=114.16, altitude=12.5, accuracy=7.5,
            speed=3.2, heading=123.0, timestamp=999.0, quality=LocationQuality.GOOD,
        )

        fused = combine([sample], 1000.0, FusionConfig(), MotionState.WALKING)

        assert fused.latitude == sample.latitude
        assert fused.longitude == sample.longitude
        assert fused.altitude == sample.altitude
        assert fused.accuracy == sample.accuracy
        assert fused.speed == sample.speed
        assert fused.heading == sample.heading
        assert fused.timestamp == sample.timestamp
        assert fused.quality == LocationQuality.GOOD
        assert fused.motion_state == MotionState.WALKING
        assert fused.provenance.source_count == 1
        assert fused.provenance.sources == (SourceType.GPS,)

    def test_harmonic_mean_accuracy(self, make_sample):
        config = FusionConfig()
        samples = [
            make_sample(accuracy=5.0),
            make_sample(accuracy=20.0, source=SourceType.NETWORK),
        ]
        w = [location_weight(s, 1000.0, config) for s in samples]

        fused = combine(samples, 1000.0, config)

        expected = (w[0] + w[1]) / (w[0] / 5.0 + w[1] / 20.0)
        assert fused.accuracy == pytest.approx(expected)
        assert 5.0 < fused.accuracy < 20.0
        assert fused.provenance.total_weight == pytest.approx(sum(w))

    def test_weighted_position(self, make_sample):
        config = FusionConfig()
        samples = [
            make_sample(latitude=22.290, accuracy=5.0),
            make_sample(latitude=22.291, accuracy=50.0, source=SourceType.NETWORK),
        ]
        w = [location_weight(s, 1000.0, config) for s in samples]

        fused = combine(samples, 1000.0, config)

        expected = (w[0] * 22.290 + w[1] * 22.291) / (w[0] + w[1])
        assert fused.latitude == pytest.approx(expected)
        # Pulled toward the accurate sample
        assert fused.latitude < 22.2905

    def test_quality_and_timestamp(self, make_sample):
        samples = [
            make_sample(accuracy=60.0, timestamp=1001.0, source=SourceType.NETWORK),
            make_sample(accuracy=4.0, timestamp=999.0),
        ]

        fused = combine(samples, 1001.0, FusionConfig())

        assert fused.quality == LocationQuality.EXCELLENT
        assert fused.timestamp == 1001.0
        assert fused.provenance.source_count == 2
        assert set(fused.provenance.sources) == {SourceType.GPS, SourceType.NETWORK}

    def test_optional_fields_from_reporting_samples(self, make_sample):
        samples = [
            make_sample(altitude=10.0, speed=None, heading=None),
            make_sample(altitude=None, speed=None, heading=None, source=SourceType.PASSIVE),
        ]

        fused = combine(samples, 1000.0, FusionConfig())

        assert fused.altitude == pytest.approx(10.0)
        assert fused.speed == 0.0
        assert fused.heading == 0.0

    def test_accuracy_floor(self, make_sample):
        samples = [make_sample(accuracy=0.0), make_sample(accuracy=10.0)]

        fused = combine(samples, 1000.0, FusionConfig(min_accuracy_m=0.1))

        assert math.isfinite(fused.accuracy)
        assert fused.accuracy > 0

    def test_zero_total_weight_returns_first(self, make_sample):
        config = FusionConfig(gps_weight=0.0)
        samples = [
            make_sample(latitude=22.29, accuracy=3.0),
            make_sample(latitude=22.30, accuracy=8.0),
        ]

        fused = combine(samples, 1000.0, config)

        assert fused.latitude == 22.29
        assert fused.accuracy == 3.0
