"""
Threshold / fuzzy-membership activity classifier.

Each candidate state collects two kinds of evidence:

- speed evidence: trapezoid membership of the average speed in the
  state's speed band
- sensor evidence: step-cadence band membership for walking / running,
  vibration band membership (scaled down by any step evidence) for
  stationary, cycling, driving and transit

With both kinds available the score is their weighted sum; with one kind
the score is that membership times a per-state prior. Confidence is the
best score, reduced when only one kind of evidence exists and when the
runner-up is close.
"""

import logging
from typing import Dict, Optional, Tuple

from fusion_core.config import ClassifierConfig
from fusion_core.proto.activity import MotionResult
from fusion_core.proto.fused_location import MotionState

from .motion_analyzer import LocationAnalysis, MotionAnalyzer, SensorAnalysis

logger = logging.getLogger(__name__)

CANDIDATE_STATES = (
    MotionState.STATIONARY,
    MotionState.WALKING,
    MotionState.RUNNING,
    MotionState.CYCLING,
    MotionState.DRIVING,
    MotionState.TRANSIT,
)


def trapezoid(x: float, band: Optional[Tuple[float, float, float, float]]) -> float:
    """
    Trapezoidal membership of x in band (a, b, c, d).

    0 outside (a, d), 1 on [b, c], linear on the ramps.
    """
    if band is None:
        return 0.0
    a, b, c, d = band
    if b <= x <= c:
        return 1.0
    if a < x < b:
        return (x - a) / (b - a)
    if c < x < d:
        return (d - x) / (d - c)
    return 0.0


class ActivityClassifier:
    """
    Classify the motion state from analysed features.

    Usage:
        classifier = ActivityClassifier(ClassifierConfig())
        result = classifier.classify(sensor_analysis, location_analysis, now)
        print(result.motion_state, result.confidence)
    """

    def __init__(self, config: Optional[ClassifierConfig] = None):
        self.config = config or ClassifierConfig()

    def has_speed_evidence(self, location: LocationAnalysis) -> bool:
        return location.point_count >= self.config.min_location_points

    def has_sensor_evidence(self, sensor: SensorAnalysis) -> bool:
        return sensor.sample_count >= self.config.min_sensor_samples

    def speed_membership(self, state: MotionState, location: LocationAnalysis) -> float:
        return trapezoid(location.average_speed, self.config.speed_band(state))

    def sensor_membership(self, state: MotionState, sensor: SensorAnalysis) -> float:
        cfg = self.config
        walking_steps = running_steps = 0.0
        if sensor.step_frequency > 0:
            walking_steps = trapezoid(sensor.step_frequency, cfg.walking_step_hz)
            running_steps = trapezoid(sensor.step_frequency, cfg.running_step_hz)

        if state == MotionState.WALKING:
            return walking_steps
        if state == MotionState.RUNNING:
            return running_steps

        step_evidence = max(walking_steps, running_steps)
        vibration = trapezoid(sensor.acceleration_std, cfg.vibration_band(state))
        return vibration * (1.0 - step_evidence)

    def score(
        self,
        sensor: SensorAnalysis,
        location: LocationAnalysis,
    ) -> Dict[MotionState, float]:
        """Evidence score per candidate state (empty without any evidence)."""
        has_speed = self.has_speed_evidence(location)
        has_sensor = self.has_sensor_evidence(sensor)
        cfg = self.config

        scores = {}
        for state in CANDIDATE_STATES:
            if has_speed and has_sensor:
                scores[state] = (
                    cfg.speed_evidence_weight * self.speed_membership(state, location)
                    + cfg.sensor_evidence_weight * self.sensor_membership(state, sensor)
                )
            elif has_speed:
                scores[state] = self.speed_membership(state, location) * cfg.speed_only_prior(state)
            elif has_sensor:
                scores[state] = self.sensor_membership(state, sensor) * cfg.sensor_only_prior(state)
        return scores

    def classify(
        self,
        sensor: SensorAnalysis,
        location: LocationAnalysis,
        timestamp: Optional[float] = None,
    ) -> MotionResult:
        """
        Produce a candidate (state, confidence).

        Args:
            sensor: Inertial features
            location: Track features
            timestamp: Analysis time attached to the result

        Returns:
            MotionResult; UNKNOWN with confidence 0 when there is no
            evidence or every score is 0
        """
        metrics = MotionAnalyzer.build_metrics(sensor, location)
        scores = self.score(sensor, location)

        ranked = sorted(scores.items(), key=lambda item: item[1], reverse=True)
        if not ranked or ranked[0][1] <= 0:
            return MotionResult(MotionState.UNKNOWN, 0.0, metrics, timestamp, {})

        best_state, best = ranked[0]
        second = ranked[1][1] if len(ranked) > 1 else 0.0

        both = self.has_speed_evidence(location) and self.has_sensor_evidence(sensor)
        coverage = 1.0 if both else self.config.single_source_coverage
        confidence = best * coverage * (1.0 - self.config.ambiguity_penalty * second / best)
        confidence = min(1.0, max(0.0, confidence))

        logger.debug(
            f"Classified {best_state.value} ({confidence:.2f}), runner-up score {second:.2f}"
        )
        return MotionResult(
            best_state,
            confidence,
            metrics,
            timestamp,
            {state.value: value for state, value in scores.items()},
        )
