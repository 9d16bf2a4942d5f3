"""
Pytest configuration and shared fixtures for the location fusion core tests.

This module provides reusable fixtures for building raw samples, straight
test tracks, synthetic accelerometer signals and a controllable clock.
"""

import sys
import math
from pathlib import Path
from typing import Callable, List

import numpy as np
import pytest

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from fusion_core.config import EngineConfig
from fusion_core.geodesy import destination_point
from fusion_core.proto import (
    FusedLocation,
    RawSample,
    SensorSample,
    SensorType,
    SourceType,
)

# Hong Kong harbour, same area the field tests were recorded in
BASE_LAT = 22.2900
BASE_LON = 114.1700
GRAVITY = 9.80665


# =============================================================================
# Clock
# =============================================================================


class FakeClock:
    """Manually advanced clock for deterministic engine tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


# =============================================================================
# Sample Factories
# =============================================================================


@pytest.fixture
def make_sample() -> Callable[..., RawSample]:
    """
    Factory for RawSample with sensible defaults.

    Returns:
        Function accepting RawSample keyword overrides.
    """
    def _make(**overrides) -> RawSample:
        fields = {
            'latitude': BASE_LAT,
            'longitude': BASE_LON,
            'accuracy': 5.0,
            'timestamp': 1000.0,
            'source': SourceType.GPS,
        }
        fields.update(overrides)
        return RawSample(**fields)

    return _make


@pytest.fixture
def make_fused() -> Callable[..., FusedLocation]:
    """Factory for FusedLocation with sensible defaults."""
    def _make(**overrides) -> FusedLocation:
        fields = {
            'latitude': BASE_LAT,
            'longitude': BASE_LON,
            'accuracy': 5.0,
            'speed': 0.0,
            'heading': 0.0,
            'timestamp': 1000.0,
        }
        fields.update(overrides)
        return FusedLocation(**fields)

    return _make


def straight_track(
    count: int = 5,
    bearing: float = 10.0,
    speed_m_s: float = 5.0,
    interval_s: float = 1.0,
    start_time: float = 1000.0,
    accuracy: float = 5.0,
    source: SourceType = SourceType.GPS,
) -> List[RawSample]:
    """
    Samples along a great-circle line from the base point.

    Args:
        count: Number of samples
        bearing: Track bearing (deg)
        speed_m_s: Ground speed, also reported in each sample
        interval_s: Time between samples
        start_time: Timestamp of the first sample
        accuracy: Reported accuracy (m)
        source: Provider tag

    Returns:
        List of RawSample, oldest first
    """
    samples = []
    for i in range(count):
        lat, lon = destination_point(BASE_LAT, BASE_LON, bearing, i * speed_m_s * interval_s)
        samples.append(RawSample(
            latitude=lat,
            longitude=lon,
            accuracy=accuracy,
            timestamp=start_time + i * interval_s,
            source=source,
            speed=speed_m_s,
            heading=bearing,
        ))
    return samples


@pytest.fixture
def track_factory() -> Callable[..., List[RawSample]]:
    return straight_track


def accelerometer_signal(
    frequency_hz: float = 0.0,
    amplitude: float = 0.0,
    duration_s: float = 4.0,
    rate_hz: float = 50.0,
    start_time: float = 1000.0,
) -> List[SensorSample]:
    """
    Accelerometer samples: gravity on z plus a sinusoid along z.

    Args:
        frequency_hz: Oscillation frequency (0 = still device)
        amplitude: Oscillation amplitude (m/s²)
        duration_s: Signal length
        rate_hz: Sample rate
        start_time: Timestamp of the first sample

    Returns:
        List of SensorSample, oldest first
    """
    n = int(duration_s * rate_hz)
    t = np.arange(n) / rate_hz
    z = GRAVITY + amplitude * np.sin(2 * math.pi * frequency_hz * t)
    return [
        SensorSample(SensorType.ACCELEROMETER, 0.0, 0.0, float(z[i]), start_time + float(t[i]))
        for i in range(n)
    ]


@pytest.fixture
def accel_factory() -> Callable[..., List[SensorSample]]:
    return accelerometer_signal


@pytest.fixture
def engine_config() -> EngineConfig:
    """Default engine configuration."""
    return EngineConfig()
