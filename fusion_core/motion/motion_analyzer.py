"""
Feature extraction for motion classification.

Turns buffered inertial samples and recent fused locations into
SensorAnalysis / LocationAnalysis summaries and the ActivityMetrics
published with every classification.

Step cadence is the dominant spectral peak of the detrended
accelerometer magnitude inside the step band (numpy rFFT, Hann window).
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from fusion_core.config import ClassifierConfig
from fusion_core.proto.activity import ActivityMetrics
from fusion_core.proto.fused_location import FusedLocation
from fusion_core.proto.sensor_sample import SensorSample

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SensorAnalysis:
    """
    Inertial features over the analysis window.

    Attributes:
        sample_count: Accelerometer samples analysed
        sample_rate_hz: Accelerometer rate estimated from timestamps
        mean_dynamic_acceleration: Mean |(|a| - g)| (m/s²)
        acceleration_std: Std of |a|, i.e. vibration level (m/s²)
        acceleration_variance: Variance of |a| (m²/s⁴)
        peak_dynamic_acceleration: Max |(|a| - g)| (m/s²)
        step_frequency: Step cadence (Hz, 0 if none detected)
        step_power_ratio: Share of spectral power around the step peak
        mean_rotation_rate: Mean gyroscope magnitude (rad/s)
        gyro_sample_count: Gyroscope samples analysed
        heading_variability: 1 - mean resultant length of magnetic heading
        mag_sample_count: Magnetometer samples analysed
    """

    sample_count: int = 0
    sample_rate_hz: float = 0.0
    mean_dynamic_acceleration: float = 0.0
    acceleration_std: float = 0.0
    acceleration_variance: float = 0.0
    peak_dynamic_acceleration: float = 0.0
    step_frequency: float = 0.0
    step_power_ratio: float = 0.0
    mean_rotation_rate: float = 0.0
    gyro_sample_count: int = 0
    heading_variability: float = 0.0
    mag_sample_count: int = 0


@dataclass(frozen=True)
class LocationAnalysis:
    """
    Kinematic features of the recent fused track.

    Attributes:
        point_count: Fused locations analysed
        average_speed: Mean speed (m/s)
        max_speed: Peak speed (m/s)
        speed_variance: Variance of speed (m²/s²)
        direction_stability: Mean resultant length of headings while moving (0-1)
    """

    point_count: int = 0
    average_speed: float = 0.0
    max_speed: float = 0.0
    speed_variance: float = 0.0
    direction_stability: float = 0.0


def sample_rate(timestamps: Sequence[float]) -> float:
    """Mean sample rate (Hz) of ordered timestamps, 0 if undefined."""
    if len(timestamps) < 2:
        return 0.0
    duration = timestamps[-1] - timestamps[0]
    if duration <= 0:
        return 0.0
    return (len(timestamps) - 1) / duration


def estimate_step_frequency(
    magnitudes: np.ndarray,
    rate_hz: float,
    band_hz: Tuple[float, float] = (0.8, 4.0),
    min_power_ratio: float = 0.2,
) -> Tuple[float, float]:
    """
    Dominant periodicity of the acceleration magnitude inside band_hz.

    Args:
        magnitudes: Accelerometer magnitudes, evenly sampled
        rate_hz: Sample rate (Hz)
        band_hz: (low, high) search band (Hz)
        min_power_ratio: Minimum share of total power held by the peak
            and its two neighbouring bins

    Returns:
        (frequency_hz, power_ratio); frequency is 0 when no peak qualifies
    """
    n = len(magnitudes)
    if n < 8 or rate_hz <= 0:
        return 0.0, 0.0

    magnitudes = np.asarray(magnitudes, dtype=float)
    mean = float(np.mean(magnitudes))
    # Constant input leaves only rounding residue after detrending
    if float(np.std(magnitudes)) <= 1e-9 * max(1.0, abs(mean)):
        return 0.0, 0.0

    signal = magnitudes - mean
    spectrum = np.abs(np.fft.rfft(signal * np.hanning(n))) ** 2
    freqs = np.fft.rfftfreq(n, d=1.0 / rate_hz)

    # Ignore DC
    total = float(np.sum(spectrum[1:]))
    if total <= 0:
        return 0.0, 0.0

    in_band = np.where((freqs >= band_hz[0]) & (freqs <= band_hz[1]))[0]
    if len(in_band) == 0:
        return 0.0, 0.0

    peak = int(in_band[np.argmax(spectrum[in_band])])
    peak_power = float(np.sum(spectrum[max(1, peak - 1):peak + 2]))
    ratio = peak_power / total

    if ratio < min_power_ratio:
        return 0.0, ratio
    return float(freqs[peak]), ratio


def mean_resultant_length(angles_deg: Sequence[float]) -> float:
    """Circular concentration of angles: 1 = all equal, ~0 = uniform."""
    if len(angles_deg) == 0:
        return 0.0
    radians = np.radians(np.asarray(angles_deg, dtype=float))
    return float(np.hypot(np.mean(np.cos(radians)), np.mean(np.sin(radians))))


class MotionAnalyzer:
    """
    Compute features from buffered sensor and location data.

    Usage:
        analyzer = MotionAnalyzer(ClassifierConfig())
        sensor = analyzer.analyze_sensors(accel, gyro, mag, now)
        location = analyzer.analyze_locations(locations, now)
        metrics = analyzer.build_metrics(sensor, location)
    """

    def __init__(self, config: Optional[ClassifierConfig] = None):
        self.config = config or ClassifierConfig()

    def _window(self, items: Sequence, now: Optional[float]) -> list:
        if now is None:
            return list(items)
        cutoff = now - self.config.analysis_window_s
        return [item for item in items if item.timestamp >= cutoff]

    def analyze_sensors(
        self,
        accelerometer: Sequence[SensorSample],
        gyroscope: Sequence[SensorSample] = (),
        magnetometer: Sequence[SensorSample] = (),
        now: Optional[float] = None,
    ) -> SensorAnalysis:
        """
        Summarize inertial samples of the analysis window.

        Args:
            accelerometer: Accelerometer samples (m/s², gravity included)
            gyroscope: Gyroscope samples (rad/s)
            magnetometer: Magnetometer samples (μT)
            now: Analysis time (None = use every sample)

        Returns:
            SensorAnalysis (all zero without accelerometer data)
        """
        accel = sorted(self._window(accelerometer, now), key=lambda s: s.timestamp)
        gyro = self._window(gyroscope, now)
        mag = self._window(magnetometer, now)

        mean_rotation = float(np.mean([s.magnitude for s in gyro])) if gyro else 0.0
        heading_variability = 0.0
        if mag:
            headings = [math.degrees(math.atan2(s.y, s.x)) for s in mag]
            heading_variability = 1.0 - mean_resultant_length(headings)

        if not accel:
            return SensorAnalysis(
                mean_rotation_rate=mean_rotation,
                gyro_sample_count=len(gyro),
                heading_variability=heading_variability,
                mag_sample_count=len(mag),
            )

        magnitudes = np.array([s.magnitude for s in accel], dtype=float)
        dynamic = np.abs(magnitudes - self.config.gravity)
        rate = sample_rate([s.timestamp for s in accel])
        std = float(np.std(magnitudes))

        step_frequency, power_ratio = 0.0, 0.0
        if std >= self.config.min_step_std:
            step_frequency, power_ratio = estimate_step_frequency(
                magnitudes,
                rate,
                self.config.step_search_hz,
                self.config.min_step_power_ratio,
            )

        return SensorAnalysis(
            sample_count=len(accel),
            sample_rate_hz=rate,
            mean_dynamic_acceleration=float(np.mean(dynamic)),
            acceleration_std=std,
            acceleration_variance=float(np.var(magnitudes)),
            peak_dynamic_acceleration=float(np.max(dynamic)),
            step_frequency=step_frequency,
            step_power_ratio=power_ratio,
            mean_rotation_rate=mean_rotation,
            gyro_sample_count=len(gyro),
            heading_variability=heading_variability,
            mag_sample_count=len(mag),
        )

    def analyze_locations(
        self,
        locations: Sequence[FusedLocation],
        now: Optional[float] = None,
    ) -> LocationAnalysis:
        """
        Summarize the fused track of the analysis window.

        A point's reported speed is used when positive; otherwise speed is
        derived from the distance to the previous point.
        """
        points = sorted(self._window(locations, now), key=lambda p: p.timestamp)
        if not points:
            return LocationAnalysis()

        speeds = []
        for i, point in enumerate(points):
            if point.speed > 0:
                speeds.append(point.speed)
            elif i > 0:
                dt = point.timestamp - points[i - 1].timestamp
                if dt > 0:
                    speeds.append(point.distance_to(points[i - 1]) / dt)
            elif len(points) == 1:
                speeds.append(0.0)

        moving_headings = [
            p.heading for p in points if p.speed >= self.config.moving_speed_m_s
        ]
        stability = mean_resultant_length(moving_headings) if len(moving_headings) >= 2 else 0.0

        return LocationAnalysis(
            point_count=len(points),
            average_speed=float(np.mean(speeds)) if speeds else 0.0,
            max_speed=float(np.max(speeds)) if speeds else 0.0,
            speed_variance=float(np.var(speeds)) if speeds else 0.0,
            direction_stability=stability,
        )

    @staticmethod
    def build_metrics(sensor: SensorAnalysis, location: LocationAnalysis) -> ActivityMetrics:
        return ActivityMetrics(
            average_speed=location.average_speed,
            max_speed=location.max_speed,
            average_acceleration=sensor.mean_dynamic_acceleration,
            step_frequency=sensor.step_frequency,
            movement_variance=sensor.acceleration_variance,
            direction_stability=location.direction_stability,
        )
