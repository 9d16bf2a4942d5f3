"""
Unit tests for motion feature extraction.

Tests cover:
- Step cadence from the accelerometer magnitude spectrum
- Vibration statistics of a still device
- Derived speeds and direction stability of the fused track
"""

import numpy as np
import pytest

from fusion_core.config import ClassifierConfig
from fusion_core.geodesy import destination_point
from fusion_core.motion import MotionAnalyzer
from fusion_core.motion.motion_analyzer import (
    estimate_step_frequency,
    mean_resultant_length,
    sample_rate,
)
from fusion_core.proto import SensorSample, SensorType

from conftest import BASE_LAT, BASE_LON, GRAVITY


@pytest.fixture
def analyzer():
    return MotionAnalyzer(ClassifierConfig())


# =============================================================================
# Test Helpers
# =============================================================================


class TestHelpers:
    """Tests for the module-level feature helpers."""

    def test_sample_rate(self):
        assert sample_rate([0.0, 0.02, 0.04, 0.06]) == pytest.approx(50.0)

    def test_sample_rate_undefined(self):
        assert sample_rate([]) == 0.0
        assert sample_rate([1.0]) == 0.0
        assert sample_rate([1.0, 1.0]) == 0.0

    def test_step_frequency_of_pure_tone(self):
        rate = 50.0
        t = np.arange(200) / rate
        signal = GRAVITY + 2.0 * np.sin(2 * np.pi * 1.75 * t)

        frequency, ratio = estimate_step_frequency(signal, rate)

        assert frequency == pytest.approx(1.75, abs=0.25)
        assert ratio > 0.5

    def test_step_frequency_outside_band(self):
        rate = 50.0
        t = np.arange(200) / rate
        signal = GRAVITY + 2.0 * np.sin(2 * np.pi * 10.0 * t)

        frequency, ratio = estimate_step_frequency(signal, rate, band_hz=(0.8, 4.0))

        assert frequency == 0.0
        assert ratio < 0.2

    def test_step_frequency_short_signal(self):
        assert estimate_step_frequency(np.ones(4), 50.0) == (0.0, 0.0)

    def test_step_frequency_flat_signal(self):
        assert estimate_step_frequency(np.full(100, GRAVITY), 50.0) == (0.0, 0.0)

    @pytest.mark.parametrize('level', [0.0, 1.0, GRAVITY, 1234.5678])
    def test_step_frequency_constant_levels(self, level):
        """Any constant level is rounding residue after detrending, not a step."""
        magnitudes = [level] * 256

        assert estimate_step_frequency(magnitudes, 50.0) == (0.0, 0.0)

    def test_mean_resultant_length(self):
        assert mean_resultant_length([10.0, 10.0, 10.0]) == pytest.approx(1.0)
        assert mean_resultant_length([0.0, 180.0]) == pytest.approx(0.0, abs=1e-9)
        assert mean_resultant_length([]) == 0.0

    def test_mean_resultant_length_wraps(self):
        # 359 and 1 degrees point the same way
        assert mean_resultant_length([359.0, 1.0]) == pytest.approx(1.0, abs=1e-3)


# =============================================================================
# Test Sensor Analysis
# =============================================================================


class TestSensorAnalysis:
    """Tests for accelerometer / gyroscope / magnetometer features."""

    def test_walking_cadence(self, analyzer, accel_factory):
        samples = accel_factory(frequency_hz=2.0, amplitude=2.0)

        result = analyzer.analyze_sensors(samples, now=1004.0)

        assert result.sample_count == 200
        assert result.sample_rate_hz == pytest.approx(50.0)
        assert result.step_frequency == pytest.approx(2.0, abs=0.25)
        assert result.acceleration_std == pytest.approx(2.0 / np.sqrt(2), rel=0.05)
        assert result.peak_dynamic_acceleration == pytest.approx(2.0, abs=0.05)

    def test_still_device(self, analyzer, accel_factory):
        result = analyzer.analyze_sensors(accel_factory(), now=1004.0)

        assert result.step_frequency == 0.0
        assert result.acceleration_std == pytest.approx(0.0, abs=1e-9)
        assert result.mean_dynamic_acceleration == pytest.approx(0.0, abs=1e-9)

    def test_low_vibration_skips_step_search(self, analyzer, accel_factory):
        # Periodic but below the minimum std
        result = analyzer.analyze_sensors(accel_factory(frequency_hz=2.0, amplitude=0.2), now=1004.0)

        assert result.acceleration_std < 0.3
        assert result.step_frequency == 0.0

    def test_window_excludes_old_samples(self, analyzer, accel_factory):
        samples = accel_factory(frequency_hz=2.0, amplitude=2.0)

        result = analyzer.analyze_sensors(samples, now=1100.0)

        assert result.sample_count == 0

    def test_gyro_and_magnetometer(self, analyzer):
        gyro = [SensorSample(SensorType.GYROSCOPE, 0.0, 0.0, 0.5, 1000.0 + i) for i in range(4)]
        mag = [SensorSample(SensorType.MAGNETOMETER, 30.0, 0.0, -20.0, 1000.0 + i) for i in range(4)]

        result = analyzer.analyze_sensors([], gyro, mag, now=1004.0)

        assert result.sample_count == 0
        assert result.gyro_sample_count == 4
        assert result.mean_rotation_rate == pytest.approx(0.5)
        assert result.heading_variability == pytest.approx(0.0, abs=1e-9)


# =============================================================================
# Test Location Analysis
# =============================================================================


class TestLocationAnalysis:
    """Tests for track features."""

    def test_empty_track(self, analyzer):
        result = analyzer.analyze_locations([])

        assert result.point_count == 0
        assert result.average_speed == 0.0

    def test_reported_speeds(self, analyzer, make_fused):
        points = [
            make_fused(speed=1.0, heading=10.0, timestamp=1000.0),
            make_fused(speed=2.0, heading=10.0, timestamp=1001.0),
            make_fused(speed=3.0, heading=10.0, timestamp=1002.0),
        ]

        result = analyzer.analyze_locations(points, now=1002.0)

        assert result.point_count == 3
        assert result.average_speed == pytest.approx(2.0)
        assert result.max_speed == 3.0
        assert result.speed_variance == pytest.approx(2.0 / 3.0)
        assert result.direction_stability == pytest.approx(1.0)

    def test_derived_speed(self, analyzer, make_fused):
        lat, lon = destination_point(BASE_LAT, BASE_LON, 90.0, 10.0)
        points = [
            make_fused(timestamp=1000.0),
            make_fused(latitude=lat, longitude=lon, timestamp=1002.0),
        ]

        result = analyzer.analyze_locations(points)

        assert result.average_speed == pytest.approx(5.0, rel=1e-3)

    def test_single_still_point(self, analyzer, make_fused):
        result = analyzer.analyze_locations([make_fused()])

        assert result.point_count == 1
        assert result.average_speed == 0.0
        assert result.direction_stability == 0.0

    def test_slow_headings_ignored(self, analyzer, make_fused):
        points = [
            make_fused(speed=0.1, heading=0.0, timestamp=1000.0),
            make_fused(speed=0.1, heading=180.0, timestamp=1001.0),
        ]

        assert analyzer.analyze_locations(points).direction_stability == 0.0

    def test_build_metrics(self, analyzer, accel_factory, make_fused):
        sensor = analyzer.analyze_sensors(accel_factory(2.0, 2.0), now=1004.0)
        location = analyzer.analyze_locations([make_fused(speed=1.4), make_fused(speed=1.4, timestamp=1001.0)])

        metrics = MotionAnalyzer.build_metrics(sensor, location)

        assert metrics.average_speed == pytest.approx(1.4)
        assert metrics.step_frequency == sensor.step_frequency
        assert metrics.movement_variance == sensor.acceleration_variance
