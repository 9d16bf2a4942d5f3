"""
Outlier guard for raw location samples.

A sample that fails any check is dropped before it can touch a Kalman
filter, and counted under a reason code:

1. non_finite: latitude or longitude is NaN / infinite
2. invalid_coordinates: |lat| > 90 or |lon| > 180
3. accuracy_exceeded: accuracy above max_accuracy_threshold
4. speed_exceeded: reported speed above the speed limit
5. implied_speed_exceeded: jump from the last fused position implies a
   speed above the speed limit

The speed limit is max_speed_threshold scaled by a tolerance that the
motion state sets (e.g. x1.5 while driving).
"""

import logging
import math
from typing import Dict, List, Optional

from fusion_core.config import FusionConfig
from fusion_core.geodesy import haversine_m
from fusion_core.metrics import MetricsCollector
from fusion_core.proto.raw_sample import RawSample, SourceType
from fusion_core.proto.fused_location import FusedLocation

logger = logging.getLogger(__name__)


class OutlierGuard:
    """
    Validate raw samples against physical and contextual bounds.

    Usage:
        guard = OutlierGuard(config, metrics)

        if guard.check(sample, last_fused):
            # Sample may update the estimate
            ...
        else:
            reason = guard.get_rejection_reason(sample.source)
    """

    def __init__(
        self,
        config: Optional[FusionConfig] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        """
        Initialize guard.

        Args:
            config: Fusion configuration (uses defaults if None)
            metrics: Collector for accept / reject counters
        """
        self.config = config or FusionConfig()
        self.metrics = metrics or MetricsCollector()
        self.tolerance = 1.0

        self._accepted = 0
        self._rejected = 0
        self._last_rejection: Dict[SourceType, str] = {}

    @property
    def speed_limit(self) -> float:
        """Effective speed limit (m/s) under the current tolerance."""
        return self.config.max_speed_threshold * self.tolerance

    def set_tolerance(self, tolerance: float):
        if tolerance <= 0:
            raise ValueError(f"Tolerance must be positive: {tolerance}")
        self.tolerance = tolerance

    def check(self, sample: RawSample, last_fused: Optional[FusedLocation] = None) -> bool:
        """
        Check if a sample passes every criterion.

        Args:
            sample: Raw sample to validate
            last_fused: Last published fused location (None = no jump check)

        Returns:
            True if the sample may be used, False if it was rejected

        Side Effects:
            - Updates metrics counters
            - Updates rejection reason if rejected
        """
        reason = self.evaluate(sample, last_fused)
        if reason is not None:
            self._reject(sample, reason)
            return False

        self._accept(sample)
        return True

    def evaluate(self, sample: RawSample, last_fused: Optional[FusedLocation] = None) -> Optional[str]:
        """Return the first failing reason code, or None. Does not count."""
        if not sample.has_finite_position:
            return 'non_finite'

        if abs(sample.latitude) > 90.0 or abs(sample.longitude) > 180.0:
            return 'invalid_coordinates'

        if not sample.accuracy <= self.config.max_accuracy_threshold:
            return 'accuracy_exceeded'

        limit = self.speed_limit

        if sample.speed is not None and sample.speed > limit:
            return 'speed_exceeded'

        if last_fused is not None:
            elapsed = sample.timestamp - last_fused.timestamp
            if elapsed > 0:
                distance = haversine_m(
                    last_fused.latitude, last_fused.longitude,
                    sample.latitude, sample.longitude,
                )
                if distance / elapsed > limit:
                    return 'implied_speed_exceeded'

        return None

    def check_batch(
        self,
        samples: List[RawSample],
        last_fused: Optional[FusedLocation] = None,
    ) -> List[RawSample]:
        """Return only the samples that pass."""
        return [s for s in samples if self.check(s, last_fused)]

    def get_rejection_reason(self, source: SourceType) -> Optional[str]:
        """
        Get reason why the last sample from a source was rejected.

        Returns:
            Rejection reason code, or None if its last sample was accepted
        """
        return self._last_rejection.get(source)

    def _accept(self, sample: RawSample):
        self._accepted += 1
        self.metrics.increment('samples_accepted')
        self._last_rejection.pop(sample.source, None)

    def _reject(self, sample: RawSample, reason: str):
        self._rejected += 1
        self._last_rejection[sample.source] = reason
        self.metrics.increment('outlier_rejections')
        self.metrics.increment_drop(reason)
        logger.debug(
            f"Rejected {sample.source.value} sample at t={sample.timestamp:.3f}: {reason} "
            f"(lat={sample.latitude}, lon={sample.longitude}, acc={sample.accuracy})"
        )

    def reset(self):
        self.tolerance = 1.0
        self._accepted = 0
        self._rejected = 0
        self._last_rejection.clear()

    def get_statistics(self) -> dict:
        """Get guard statistics for diagnostics."""
        total = self._accepted + self._rejected
        return {
            'accepted_total': self._accepted,
            'rejected_total': self._rejected,
            'rejection_rate': self._rejected / total if total else 0.0,
            'speed_limit_m_s': self.speed_limit,
            'tolerance': self.tolerance,
        }
