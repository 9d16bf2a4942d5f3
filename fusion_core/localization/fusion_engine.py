"""
Location Fusion Engine.

One fusion cycle:
    outlier guard -> per-source Kalman filter -> weighted combine
    -> smoothing against the previous output -> bounded history

The engine is not internally locked; the LocationEngine serializes
every call into it.
"""

import logging
import math
import time
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional

import numpy as np

from fusion_core.config import FusionConfig
from fusion_core.io.buffers import TimedBuffer
from fusion_core.metrics import GUARD_REASONS, MetricsCollector
from fusion_core.proto.raw_sample import RawSample, SourceType
from fusion_core.proto.fused_location import FusedLocation, MotionState

from .kalman_filter import EstimatorState, LocationKalmanFilter
from .outlier_guard import OutlierGuard
from .prediction import predict
from .smoothing import smooth_location
from .weighted_fusion import combine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FusionQualityMetrics:
    """
    Diagnostic snapshot of fusion quality.

    Attributes:
        average_accuracy: Mean accuracy of the fused history (m)
        location_count: Fused locations in history
        samples_received: Raw samples evaluated
        outlier_count: Raw samples rejected by the outlier guard
        outlier_rate: outlier_count / samples_received
        kalman_gain: Mean Kalman gain of the last cycle
        rejections: Outlier guard rejects per reason code
        fusion_confidence: (1 - outlier_rate) × exp(-average_accuracy / 50)
            × min(1, location_count / 10), in [0, 1]
    """

    average_accuracy: float = 0.0
    location_count: int = 0
    samples_received: int = 0
    outlier_count: int = 0
    outlier_rate: float = 0.0
    kalman_gain: float = 0.0
    fusion_confidence: float = 0.0
    rejections: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'average_accuracy': self.average_accuracy,
            'location_count': self.location_count,
            'samples_received': self.samples_received,
            'outlier_count': self.outlier_count,
            'outlier_rate': self.outlier_rate,
            'kalman_gain': self.kalman_gain,
            'fusion_confidence': self.fusion_confidence,
            'rejections': dict(self.rejections),
        }


class FusionEngine:
    """
    Multi-source location fusion.

    Usage:
        engine = FusionEngine(FusionConfig(), metrics)

        fused = engine.fuse_locations([gps_sample, network_sample], now=t)
        if fused is not None:
            publish(fused)

        ahead = engine.predict_location(1.0)
        print(engine.get_quality_metrics().fusion_confidence)
    """

    def __init__(
        self,
        config: Optional[FusionConfig] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        """
        Initialize fusion engine.

        Args:
            config: Fusion coefficients (uses defaults if None)
            metrics: Shared collector (a private one is created if None)
        """
        self.config = config or FusionConfig()
        self.metrics = metrics or MetricsCollector()
        self.guard = OutlierGuard(self.config, self.metrics)

        self._filters: Dict[SourceType, LocationKalmanFilter] = {}
        self._history: TimedBuffer[FusedLocation] = TimedBuffer(self.config.max_buffer_size)
        self._last_location: Optional[FusedLocation] = None
        self._motion_state = MotionState.UNKNOWN

        self._last_gain = 0.0
        # Quality metrics count from here; the collector itself is shared
        self._baseline = self.metrics.snapshot()

    @property
    def last_location(self) -> Optional[FusedLocation]:
        return self._last_location

    @property
    def history(self) -> List[FusedLocation]:
        """Fused history, oldest first."""
        return self._history.values()

    @property
    def motion_state(self) -> MotionState:
        return self._motion_state

    def filter_state(self, source: SourceType) -> Optional[EstimatorState]:
        """Kalman estimate for one source, or None before its first sample."""
        kf = self._filters.get(source)
        return kf.state if kf is not None else None

    def fuse_locations(
        self,
        samples: List[RawSample],
        now: Optional[float] = None,
    ) -> Optional[FusedLocation]:
        """
        Run one fusion cycle.

        Args:
            samples: Raw samples gathered since the last cycle (any sources)
            now: Fusion time for the age weight (default: latest sample time)

        Returns:
            The new published FusedLocation, or None when no sample survives
            the outlier guard
        """
        if not samples:
            return None

        ordered = sorted(samples, key=lambda s: s.timestamp)
        now = ordered[-1].timestamp if now is None else now
        self.metrics.increment('fusion_cycles')

        filtered: List[RawSample] = []
        gains: List[float] = []

        for sample in ordered:
            self.metrics.increment('samples_received')

            if not self.guard.check(sample, self._last_location):
                continue

            kf = self._filter_for(sample.source)
            latitude, longitude = kf.update(
                sample.latitude, sample.longitude, sample.accuracy, sample.timestamp
            )
            gains.append(kf.last_gain)
            filtered.append(replace(sample, latitude=latitude, longitude=longitude))

        if not filtered:
            logger.debug(f"Fusion cycle dropped all {len(samples)} samples")
            return None

        self._last_gain = float(np.mean(gains))
        self.metrics.observe('kalman_gain', self._last_gain)

        fused = combine(filtered, now, self.config, self._motion_state)
        fused = replace(
            fused,
            provenance=replace(fused.provenance, kalman_filtered=True, kalman_gain=self._last_gain),
        )

        if self._last_location is not None:
            fused = smooth_location(fused, self._last_location, self.config)

        self._last_location = fused
        self._history.append(fused)

        self.metrics.increment('fused_locations')
        self.metrics.observe('fused_accuracy_m', fused.accuracy)
        self.metrics.observe('fusion_weight_total', fused.provenance.total_weight)

        logger.debug(
            f"Fused {len(filtered)}/{len(samples)} samples -> "
            f"({fused.latitude:.6f}, {fused.longitude:.6f}) ±{fused.accuracy:.1f}m "
            f"{fused.quality.name}"
        )
        return fused

    def _filter_for(self, source: SourceType) -> LocationKalmanFilter:
        kf = self._filters.get(source)
        if kf is None:
            kf = LocationKalmanFilter(self.config.process_noise, self.config.measurement_noise)
            self._filters[source] = kf
            logger.debug(f"Created Kalman filter for source {source.value}")
        return kf

    def predict_location(self, future_s: float) -> Optional[FusedLocation]:
        """
        Predict the position future_s seconds after the last fused location.

        Returns:
            Predicted FusedLocation, or None with fewer than 2 fused points
        """
        return predict(self._history.values(), future_s, self.config.prediction_window)

    def get_quality_metrics(self) -> FusionQualityMetrics:
        """Get fusion quality diagnostics."""
        history = self._history.values()
        count = len(history)
        average_accuracy = float(np.mean([h.accuracy for h in history])) if history else 0.0

        recent = self.metrics.snapshot().since(self._baseline)
        received = recent.counter('samples_received')
        outliers = recent.counter('outlier_rejections')
        outlier_rate = outliers / received if received else 0.0
        confidence = (
            (1.0 - outlier_rate)
            * math.exp(-average_accuracy / 50.0)
            * min(1.0, count / 10.0)
        )

        return FusionQualityMetrics(
            average_accuracy=average_accuracy,
            location_count=count,
            samples_received=received,
            outlier_count=outliers,
            outlier_rate=outlier_rate,
            kalman_gain=self._last_gain,
            fusion_confidence=min(1.0, max(0.0, confidence)),
            rejections=recent.drops_for(GUARD_REASONS),
        )

    def apply_motion_state(self, state: MotionState, tolerance: float = 1.0):
        """
        Motion-state feedback.

        Args:
            state: Tag for subsequent fused outputs
            tolerance: Multiplier on the speed thresholds of the outlier guard
        """
        self._motion_state = state
        self.guard.set_tolerance(tolerance)
        logger.info(f"Fusion adapted to {state.value} (speed limit {self.guard.speed_limit:.1f} m/s)")

    def update_config(self, config: FusionConfig):
        """Apply new coefficients; filters keep their state."""
        self.config = config
        self.guard.config = config
        for kf in self._filters.values():
            kf.update_noise(config.process_noise, config.measurement_noise)
        self._history.resize(config.max_buffer_size)
        logger.info("Fusion configuration updated")

    def purge(self, now: float, retention_s: float) -> int:
        """Drop fused history older than retention_s. Returns count removed."""
        return self._history.purge(now, retention_s)

    def reset(self):
        """Full teardown: the next sample of every source snaps its filter."""
        self._filters.clear()
        self._history.clear()
        self._last_location = None
        self._motion_state = MotionState.UNKNOWN
        self._last_gain = 0.0
        self._baseline = self.metrics.snapshot()
        self.guard.reset()
        logger.info("Fusion engine reset")

    def get_statistics(self) -> dict:
        """Get engine statistics for diagnostics."""
        return {
            'sources': sorted(s.value for s in self._filters),
            'history_size': len(self._history),
            'motion_state': self._motion_state.value,
            'guard': self.guard.get_statistics(),
        }
