"""
Motion Engine: buffering, periodic analysis and gated state transitions.

Sensor and location updates are independent entry points. They only
trigger analysis when immediate_analysis is set; otherwise analysis runs
on the owner's periodic tick (run_analysis), which is ignored while the
engine is stopped.
"""

import logging
import time
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, Optional

import numpy as np

from fusion_core.config import MotionConfig
from fusion_core.io.buffers import TimedBuffer
from fusion_core.io.channel import EventChannel
from fusion_core.metrics import MetricsCollector
from fusion_core.proto.activity import ActivityMetrics, MotionResult
from fusion_core.proto.fused_location import FusedLocation, MotionState
from fusion_core.proto.sensor_sample import SensorSample, SensorType

from .activity_classifier import ActivityClassifier
from .motion_analyzer import MotionAnalyzer
from .transition_detector import StateTransition, TransitionDetector

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MotionMetrics:
    """
    Diagnostic snapshot of the motion engine.

    Attributes:
        motion_state: Current state
        confidence: Confidence of the current state
        activity: Features of the last analysis
        statistics: Durations per state, transition counts, confidence history
        buffer_sizes: Occupancy of every buffer
    """

    motion_state: MotionState
    confidence: float
    activity: ActivityMetrics
    statistics: dict = field(default_factory=dict)
    buffer_sizes: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'motion_state': self.motion_state.value,
            'confidence': self.confidence,
            'activity': self.activity.to_dict(),
            'statistics': self.statistics,
            'buffer_sizes': self.buffer_sizes,
        }


class MotionEngine:
    """
    Classify the user's motion state from sensors and fused locations.

    Usage:
        engine = MotionEngine(MotionConfig(), metrics)
        engine.motion_state_stream.subscribe(on_transition)
        engine.start()

        engine.update_sensor(accel_sample)
        engine.update_location(fused)
        engine.run_analysis(now)          # periodic tick

        print(engine.get_current_motion().motion_state)
    """

    def __init__(
        self,
        config: Optional[MotionConfig] = None,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize motion engine.

        Args:
            config: Motion configuration (uses defaults if None)
            metrics: Shared collector (a private one is created if None)
            clock: Time source used when no analysis time is given
        """
        self.config = config or MotionConfig()
        self.metrics = metrics or MetricsCollector()
        self._clock = clock

        self.analyzer = MotionAnalyzer(self.config.classifier)
        self.classifier = ActivityClassifier(self.config.classifier)
        self.detector = TransitionDetector(self.config.transition_confidence_threshold)

        self._sensor_buffers: Dict[SensorType, TimedBuffer[SensorSample]] = {
            sensor: TimedBuffer(self.config.max_sensor_buffer, self.config.buffer_retention_s)
            for sensor in SensorType
        }
        self._location_buffer: TimedBuffer[FusedLocation] = TimedBuffer(
            self.config.max_location_buffer, self.config.buffer_retention_s
        )

        self.motion_state_stream: EventChannel[StateTransition] = EventChannel('motion_state')

        self._running = False
        self._reset_state()

    def _reset_state(self):
        self._state = MotionState.UNKNOWN
        self._confidence = 0.0
        self._activity = ActivityMetrics.empty()
        self._state_since: Optional[float] = None
        self._last_analysis_time: Optional[float] = None
        self._state_durations: Dict[MotionState, float] = defaultdict(float)
        self._confidence_history: Deque[float] = deque(maxlen=self.config.max_statistics_history)
        self._analysis_count = 0
        self._transition_count = 0
        self._rejected_count = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def current_state(self) -> MotionState:
        return self._state

    def start(self):
        if self._running:
            return
        self._running = True
        logger.info("Motion engine started")

    def stop(self):
        if not self._running:
            return
        self._running = False
        logger.info("Motion engine stopped")

    def reset(self):
        """Clear buffers and return to UNKNOWN (listeners stay subscribed)."""
        for buffer in self._sensor_buffers.values():
            buffer.clear()
        self._location_buffer.clear()
        self._reset_state()
        logger.info("Motion engine reset")

    # -------------------------------------------------------------------------
    # Inputs
    # -------------------------------------------------------------------------

    def update_sensor(self, sample: SensorSample):
        """Buffer one inertial sample."""
        self._sensor_buffers[sample.sensor].append(sample)
        self.metrics.increment('sensor_samples')

        if self.config.immediate_analysis:
            self.analyze(sample.timestamp)

    def update_location(self, location: FusedLocation):
        """Buffer one fused location."""
        self._location_buffer.append(location)

        if self.config.immediate_analysis:
            self.analyze(location.timestamp)

    def analyze_motion(self, location: FusedLocation) -> MotionState:
        """Buffer a location, analyse immediately and return the current state."""
        self._location_buffer.append(location)
        self.analyze(location.timestamp)
        return self._state

    # -------------------------------------------------------------------------
    # Analysis
    # -------------------------------------------------------------------------

    def run_analysis(self, now: Optional[float] = None) -> Optional[MotionResult]:
        """
        Periodic analysis tick.

        Returns:
            The candidate result, or None while the engine is stopped
        """
        if not self._running:
            return None
        return self.analyze(now)

    def analyze(self, now: Optional[float] = None) -> MotionResult:
        """
        Analyse the buffers and gate the candidate state.

        Args:
            now: Analysis time (default: engine clock)

        Returns:
            The candidate MotionResult (accepted or not)
        """
        now = self._clock() if now is None else now

        sensor = self.analyzer.analyze_sensors(
            self._sensor_buffers[SensorType.ACCELEROMETER].values(),
            self._sensor_buffers[SensorType.GYROSCOPE].values(),
            self._sensor_buffers[SensorType.MAGNETOMETER].values(),
            now,
        )
        location = self.analyzer.analyze_locations(self._location_buffer.values(), now)
        result = self.classifier.classify(sensor, location, now)

        self.consider(result)
        return result

    def consider(self, result: MotionResult) -> StateTransition:
        """
        Apply the confidence gate to a candidate classification.

        A different state is adopted only with confidence >= threshold; a
        rejected candidate leaves state and confidence unchanged and emits
        nothing. A candidate equal to the current state refreshes its
        confidence.

        Returns:
            The evaluated StateTransition
        """
        timestamp = result.timestamp if result.timestamp is not None else self._clock()

        self._analysis_count += 1
        self._activity = result.metrics
        self._confidence_history.append(result.confidence)
        self.metrics.increment('motion_analyses')
        self.metrics.observe('motion_confidence', result.confidence)

        if self._state_since is None:
            self._state_since = timestamp
        self._last_analysis_time = max(timestamp, self._last_analysis_time or timestamp)

        transition = self.detector.evaluate(
            self._state, result.motion_state, result.confidence, timestamp
        )

        if not transition.is_change:
            self._confidence = result.confidence
        elif transition.is_valid:
            self._accept(transition)
        else:
            self._rejected_count += 1
            self.metrics.increment('transitions_rejected')
            logger.debug(
                f"Rejected {transition.from_state.value} -> {transition.to_state.value} "
                f"(confidence {transition.confidence:.2f} < {self.detector.threshold:.2f})"
            )

        return transition

    def _accept(self, transition: StateTransition):
        timestamp = transition.timestamp
        self._state_durations[self._state] += max(0.0, timestamp - self._state_since)
        self._state_since = timestamp

        self._state = transition.to_state
        self._confidence = transition.confidence
        self._transition_count += 1
        self.metrics.increment('transitions_accepted')

        logger.info(
            f"Motion state {transition.from_state.value} -> {transition.to_state.value} "
            f"(confidence {transition.confidence:.2f})"
        )
        self.motion_state_stream.publish(transition)

    # -------------------------------------------------------------------------
    # Queries and maintenance
    # -------------------------------------------------------------------------

    def get_current_motion(self) -> MotionResult:
        return MotionResult(self._state, self._confidence, self._activity, self._last_analysis_time)

    def buffer_sizes(self) -> Dict[str, int]:
        sizes = {sensor.value: len(buffer) for sensor, buffer in self._sensor_buffers.items()}
        sizes['location'] = len(self._location_buffer)
        return sizes

    def get_metrics(self) -> MotionMetrics:
        """Get motion diagnostics."""
        durations = dict(self._state_durations)
        if self._state_since is not None and self._last_analysis_time is not None:
            durations[self._state] = (
                durations.get(self._state, 0.0)
                + max(0.0, self._last_analysis_time - self._state_since)
            )

        history = list(self._confidence_history)
        statistics = {
            'analysis_count': self._analysis_count,
            'transition_count': self._transition_count,
            'rejected_transitions': self._rejected_count,
            'state_durations': {state.value: seconds for state, seconds in durations.items()},
            'average_confidence': float(np.mean(history)) if history else 0.0,
            'confidence_history': history,
        }

        return MotionMetrics(
            motion_state=self._state,
            confidence=self._confidence,
            activity=self._activity,
            statistics=statistics,
            buffer_sizes=self.buffer_sizes(),
        )

    def cleanup(self, now: Optional[float] = None) -> int:
        """Drop buffered samples older than the retention window."""
        now = self._clock() if now is None else now
        removed = sum(buffer.purge(now) for buffer in self._sensor_buffers.values())
        removed += self._location_buffer.purge(now)
        if removed:
            logger.debug(f"Motion cleanup removed {removed} samples")
        return removed

    def update_config(self, config: MotionConfig):
        """Apply a new configuration; buffers keep their newest samples."""
        self.config = config
        self.analyzer = MotionAnalyzer(config.classifier)
        self.classifier = ActivityClassifier(config.classifier)
        self.detector = TransitionDetector(config.transition_confidence_threshold)

        for buffer in self._sensor_buffers.values():
            buffer.resize(config.max_sensor_buffer)
            buffer.retention_s = config.buffer_retention_s
        self._location_buffer.resize(config.max_location_buffer)
        self._location_buffer.retention_s = config.buffer_retention_s
        self._confidence_history = deque(self._confidence_history, maxlen=config.max_statistics_history)
        logger.info("Motion configuration updated")
