"""
Location Engine: orchestrator of the fusion and motion engines.

Owns configuration, both engines, the per-source pending sample buffers,
the periodic timers and the public output channels:

- location_stream: one FusedLocation per completed fusion cycle
- motion_state_stream: one StateTransition per accepted motion change
- status_stream: EngineStatus changes

Every entry point (push callbacks, timer ticks, pull API) runs under one
re-entrant lock, so the engines themselves need no locking. Timer ticks
check the running flag after taking the lock and do nothing once stop()
has begun.
"""

import functools
import logging
import threading
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from fusion_core.config import EngineConfig
from fusion_core.io.buffers import TimedBuffer
from fusion_core.io.channel import EventChannel, Subscription
from fusion_core.io.scheduler import PeriodicTask
from fusion_core.localization.fusion_engine import FusionEngine, FusionQualityMetrics
from fusion_core.metrics import MetricsCollector, MetricsSnapshot
from fusion_core.motion.motion_engine import MotionEngine, MotionMetrics
from fusion_core.motion.transition_detector import StateTransition
from fusion_core.proto.activity import MotionResult
from fusion_core.proto.fused_location import FusedLocation, MotionState
from fusion_core.proto.raw_sample import RawSample, SourceType
from fusion_core.proto.sensor_sample import SensorSample

logger = logging.getLogger(__name__)


class EngineStatus(Enum):
    """Lifecycle status published on status_stream."""

    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    RUNNING = "running"
    STOPPED = "stopped"
    ERROR = "error"


@dataclass(frozen=True)
class EngineMetrics:
    """
    Diagnostic snapshot of the whole core.

    Attributes:
        status: Lifecycle status
        fusion: Fusion quality metrics
        motion: Motion engine metrics (None before initialize())
        statistics: Uptime, sample totals, fusion rate, pending occupancy
        accounting: Collector snapshot: counters, rejects per reason code
            and rolling series since the engine was constructed
    """

    status: EngineStatus
    fusion: FusionQualityMetrics
    motion: Optional[MotionMetrics] = None
    statistics: dict = field(default_factory=dict)
    accounting: MetricsSnapshot = field(default_factory=MetricsSnapshot)

    def to_dict(self) -> dict:
        return {
            'status': self.status.value,
            'fusion': self.fusion.to_dict(),
            'motion': self.motion.to_dict() if self.motion else None,
            'statistics': self.statistics,
            'accounting': self.accounting.to_dict(),
        }


class LocationEngine:
    """
    Public entry point of the fusion core.

    Usage:
        engine = LocationEngine(EngineConfig())
        engine.add_location_stream(gps_channel, SourceType.GPS)
        engine.add_sensor_stream(accel_channel)
        engine.location_stream.subscribe(store.save)
        engine.start()
        ...
        current = engine.get_current_location()
        ahead = engine.predict_location(5.0)
        engine.stop()

    Notes:
        - stop() keeps Kalman state so a later start() resumes smoothly
        - shutdown() tears everything down; the next start() snaps fresh
        - Sample timestamps must share the time base of clock
    """

    def __init__(self, config: Optional[EngineConfig] = None, clock: Callable[[], float] = time.time):
        """
        Initialize location engine.

        Args:
            config: Engine configuration (uses defaults if None)
            clock: Time source for timer ticks, cleanup and uptime
        """
        self.config = config or EngineConfig()
        self._clock = clock
        self._lock = threading.RLock()
        self.metrics = MetricsCollector()

        self.location_stream: EventChannel[FusedLocation] = EventChannel('fused_location')
        self.motion_state_stream: EventChannel[StateTransition] = EventChannel('motion_state')
        self.status_stream: EventChannel[EngineStatus] = EventChannel('engine_status')

        self.fusion_engine: Optional[FusionEngine] = None
        self.motion_engine: Optional[MotionEngine] = None

        self._status = EngineStatus.UNINITIALIZED
        self._running = False
        self._pending: Dict[SourceType, TimedBuffer[RawSample]] = {}
        self._location_sources: List[Tuple[EventChannel, SourceType]] = []
        self._sensor_sources: List[EventChannel] = []
        self._subscriptions: List[Subscription] = []
        self._motion_subscription: Optional[Subscription] = None
        self._timers: Dict[str, PeriodicTask] = {}

        self._reset_statistics()

    def _reset_statistics(self):
        self._started_at: Optional[float] = None
        self._total_samples = 0
        self._total_sensor_samples = 0
        self._fusion_cycles = 0
        self._fused_count = 0

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def status(self) -> EngineStatus:
        return self._status

    @property
    def is_running(self) -> bool:
        return self._running

    def _set_status(self, status: EngineStatus):
        if status == self._status:
            return
        logger.info(f"Location engine {self._status.value} -> {status.value}")
        self._status = status
        self.status_stream.publish(status)

    def initialize(self):
        """Create both engines (no-op if already initialized)."""
        with self._lock:
            if self.fusion_engine is not None:
                return

            try:
                self.fusion_engine = FusionEngine(self.config.fusion, self.metrics)
                self.motion_engine = MotionEngine(self.config.motion, self.metrics, self._clock)
                self._motion_subscription = self.motion_engine.motion_state_stream.subscribe(
                    self._on_motion_transition
                )
                self._pending = {
                    source: TimedBuffer(self.config.fusion.max_buffer_size, self.config.sample_retention_s)
                    for source in SourceType
                }
            except Exception:
                logger.exception("Location engine initialization failed")
                self._set_status(EngineStatus.ERROR)
                raise

            self._set_status(EngineStatus.INITIALIZED)

    def start(self):
        """Subscribe input streams and start the timers (idempotent)."""
        with self._lock:
            if self._running:
                return
            self.initialize()

            for channel, source in self._location_sources:
                self._subscribe_location(channel, source)
            for channel in self._sensor_sources:
                self._subscriptions.append(channel.subscribe(self.on_sensor_sample))

            self.motion_engine.start()
            self._running = True
            if self._started_at is None:
                self._started_at = self._clock()

            self._timers = {
                'fusion': PeriodicTask(self._fusion_interval(), self._on_fusion_tick, 'fusion'),
                'analysis': PeriodicTask(
                    self.config.motion.analysis_interval_s, self._on_analysis_tick, 'analysis'
                ),
                'cleanup': PeriodicTask(self._cleanup_interval(), self._on_cleanup_tick, 'cleanup'),
            }
            for timer in self._timers.values():
                timer.start()

            self._set_status(EngineStatus.RUNNING)

    def stop(self):
        """
        Cancel subscriptions and timers (idempotent).

        Engines keep their filter state; start() resumes.
        """
        with self._lock:
            if not self._running:
                return
            self._running = False

            for subscription in self._subscriptions:
                subscription.cancel()
            self._subscriptions.clear()

            self.motion_engine.stop()
            timers = list(self._timers.values())
            self._timers = {}
            self._set_status(EngineStatus.STOPPED)

        # Joined outside the lock so an in-flight tick can finish
        for timer in timers:
            timer.stop()

    def shutdown(self):
        """Stop and discard all engine state; the next start() begins fresh."""
        self.stop()
        with self._lock:
            if self.fusion_engine is None:
                return
            self.fusion_engine.reset()
            self.motion_engine.reset()
            if self._motion_subscription is not None:
                self._motion_subscription.cancel()
                self._motion_subscription = None
            self.fusion_engine = None
            self.motion_engine = None
            self._pending = {}
            self._reset_statistics()
            self._set_status(EngineStatus.UNINITIALIZED)
            logger.info("Location engine shut down")

    # -------------------------------------------------------------------------
    # Inputs
    # -------------------------------------------------------------------------

    def add_location_stream(self, channel: EventChannel, source: SourceType = SourceType.GPS):
        """
        Register a raw-location stream for one provider.

        Samples are re-tagged with source if their own tag differs.
        """
        with self._lock:
            self._location_sources.append((channel, source))
            if self._running:
                self._subscribe_location(channel, source)

    def add_sensor_stream(self, channel: EventChannel):
        """Register a SensorSample stream."""
        with self._lock:
            self._sensor_sources.append(channel)
            if self._running:
                self._subscriptions.append(channel.subscribe(self.on_sensor_sample))

    def _subscribe_location(self, channel: EventChannel, source: SourceType):
        callback = functools.partial(self._on_stream_sample, source)
        self._subscriptions.append(channel.subscribe(callback))

    def _on_stream_sample(self, source: SourceType, sample: RawSample):
        if sample.source != source:
            sample = replace(sample, source=source)
        self.on_raw_sample(sample)

    def on_raw_sample(self, sample: RawSample):
        """Queue a raw sample for the next fusion cycle."""
        with self._lock:
            self.initialize()
            self._total_samples += 1
            self.metrics.increment('samples_in')

            if not self.config.is_source_enabled(sample.source):
                self.metrics.increment_drop('source_disabled')
                return

            pending = self._pending[sample.source]
            if len(pending) == pending.max_size:
                self.metrics.increment_drop('queue_full')
            pending.append(sample)

    def on_sensor_sample(self, sample: SensorSample):
        """Forward an inertial sample to the motion engine."""
        with self._lock:
            self.initialize()
            self._total_sensor_samples += 1
            self.motion_engine.update_sensor(sample)

    # -------------------------------------------------------------------------
    # Cycles
    # -------------------------------------------------------------------------

    def pending_count(self) -> int:
        with self._lock:
            return sum(len(buffer) for buffer in self._pending.values())

    def run_fusion_cycle(self, now: Optional[float] = None) -> Optional[FusedLocation]:
        """
        Fuse every pending sample, publish and forward the result.

        Args:
            now: Fusion time (default: clock)

        Returns:
            The new FusedLocation, or None if nothing was pending or survived
        """
        with self._lock:
            self.initialize()
            now = self._clock() if now is None else now

            samples = [s for buffer in self._pending.values() for s in buffer.drain()]
            if not samples:
                return None

            self._fusion_cycles += 1
            fused = self.fusion_engine.fuse_locations(samples, now)
            if fused is None:
                return None

            self._fused_count += 1
            self.motion_engine.update_location(fused)
            self.location_stream.publish(fused)

            if self._running and self._status == EngineStatus.ERROR:
                self._set_status(EngineStatus.RUNNING)
            return fused

    def run_motion_analysis(self, now: Optional[float] = None) -> Optional[MotionResult]:
        """Run one motion analysis pass immediately."""
        with self._lock:
            self.initialize()
            return self.motion_engine.analyze(self._clock() if now is None else now)

    def cleanup(self, now: Optional[float] = None) -> int:
        """
        Age-based eviction of every buffer.

        Returns:
            Number of entries removed
        """
        with self._lock:
            if self.fusion_engine is None:
                return 0
            now = self._clock() if now is None else now

            stale = sum(buffer.purge(now) for buffer in self._pending.values())
            if stale:
                self.metrics.increment_drop('stale', stale)

            removed = stale
            removed += self.fusion_engine.purge(now, self.config.sample_retention_s)
            removed += self.motion_engine.cleanup(now)
            return removed

    def _guarded_tick(self, action: Callable[[], object]):
        with self._lock:
            if not self._running:
                return
            try:
                action()
            except Exception:
                self._set_status(EngineStatus.ERROR)
                raise

    def _on_fusion_tick(self):
        self._guarded_tick(self.run_fusion_cycle)

    def _on_analysis_tick(self):
        self._guarded_tick(lambda: self.motion_engine.run_analysis(self._clock()))

    def _on_cleanup_tick(self):
        self._guarded_tick(self.cleanup)

    def _fusion_interval(self) -> float:
        state = self.motion_engine.current_state if self.motion_engine else MotionState.UNKNOWN
        return self.config.policy.interval_for(state, self.config.fusion_interval_s)

    def _cleanup_interval(self) -> float:
        return min(self.config.cleanup_interval_s, self.config.motion.cleanup_interval_s)

    def _on_motion_transition(self, transition: StateTransition):
        """Feed an accepted motion change back into fusion and republish it."""
        state = transition.to_state
        self.fusion_engine.apply_motion_state(state, self.config.policy.tolerance_for(state))

        timer = self._timers.get('fusion')
        if timer is not None:
            timer.reschedule(self._fusion_interval())

        self.motion_state_stream.publish(transition)

    # -------------------------------------------------------------------------
    # Pull API
    # -------------------------------------------------------------------------

    def get_current_location(self) -> Optional[FusedLocation]:
        """
        Last fused location; fuses pending samples first if there are any.
        """
        with self._lock:
            if self.fusion_engine is None:
                return None
            if self.pending_count():
                fused = self.run_fusion_cycle()
                if fused is not None:
                    return fused
            return self.fusion_engine.last_location

    def predict_location(self, future_s: float) -> Optional[FusedLocation]:
        """Predicted location future_s seconds after the last fused one."""
        with self._lock:
            if self.fusion_engine is None:
                return None
            return self.fusion_engine.predict_location(future_s)

    def get_current_motion(self) -> MotionResult:
        with self._lock:
            if self.motion_engine is None:
                return MotionResult.unknown()
            return self.motion_engine.get_current_motion()

    def get_quality_metrics(self) -> FusionQualityMetrics:
        with self._lock:
            if self.fusion_engine is None:
                return FusionQualityMetrics()
            return self.fusion_engine.get_quality_metrics()

    def get_metrics(self) -> EngineMetrics:
        """Get a diagnostic snapshot of the whole core."""
        with self._lock:
            now = self._clock()
            uptime = now - self._started_at if self._started_at is not None else 0.0

            statistics = {
                'uptime_s': uptime,
                'total_samples': self._total_samples,
                'total_sensor_samples': self._total_sensor_samples,
                'fusion_cycles': self._fusion_cycles,
                'fused_locations': self._fused_count,
                'fusion_rate': self._fused_count / self._total_samples if self._total_samples else 0.0,
                'pending_samples': {source.value: len(buf) for source, buf in self._pending.items()},
                'fusion_interval_s': self._fusion_interval(),
                'listener_errors': sum(
                    channel.error_count
                    for channel in (self.location_stream, self.motion_state_stream, self.status_stream)
                ),
                'timer_errors': sum(timer.error_count for timer in self._timers.values()),
            }

            return EngineMetrics(
                status=self._status,
                fusion=self.get_quality_metrics(),
                motion=self.motion_engine.get_metrics() if self.motion_engine else None,
                statistics=statistics,
                accounting=self.metrics.snapshot(),
            )

    def update_config(self, config: EngineConfig):
        """Apply a new configuration to both engines, buffers and timers."""
        with self._lock:
            self.config = config

            if self.fusion_engine is not None:
                self.fusion_engine.update_config(config.fusion)
                self.motion_engine.update_config(config.motion)
                state = self.motion_engine.current_state
                self.fusion_engine.apply_motion_state(state, config.policy.tolerance_for(state))

                for source, buffer in self._pending.items():
                    buffer.resize(config.fusion.max_buffer_size)
                    buffer.retention_s = config.sample_retention_s
                    if not config.is_source_enabled(source) and buffer:
                        self.metrics.increment_drop('source_disabled', len(buffer))
                        buffer.clear()

            if self._timers:
                self._timers['fusion'].reschedule(self._fusion_interval())
                self._timers['analysis'].reschedule(config.motion.analysis_interval_s)
                self._timers['cleanup'].reschedule(self._cleanup_interval())

            logger.info("Location engine configuration updated")
