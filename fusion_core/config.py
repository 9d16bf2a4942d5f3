"""
Configuration for the location fusion core.

Every tunable coefficient lives in a typed dataclass with a documented
default. The LocationEngine owns an EngineConfig and hands the nested
FusionConfig / MotionConfig to its engines at construction and on
update_config().
"""

import logging
from dataclasses import asdict, dataclass, field, fields
from typing import Dict, Optional, Tuple

from fusion_core.proto.raw_sample import SourceType
from fusion_core.proto.fused_location import MotionState


# Logging configuration
LOGGING_CONFIG = {
    "level": "INFO",
    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}


def configure_logging(level: Optional[str] = None):
    """
    Apply LOGGING_CONFIG to the root logger.

    Args:
        level: Override for LOGGING_CONFIG["level"] (e.g. "DEBUG")
    """
    logging.basicConfig(
        level=getattr(logging, (level or LOGGING_CONFIG["level"]).upper()),
        format=LOGGING_CONFIG["format"],
    )


Band = Tuple[float, float, float, float]


def _check_factor(name: str, value: float):
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"{name} must be in [0,1]: {value}")


def _check_positive(name: str, value: float):
    if value <= 0:
        raise ValueError(f"{name} must be positive: {value}")


def _check_band(name: str, band: Band):
    if len(band) != 4 or list(band) != sorted(band):
        raise ValueError(f"{name} must be 4 ascending values (a, b, c, d): {band}")


@dataclass
class FusionConfig:
    """
    Configuration for the fusion engine.

    Attributes:
        process_noise: Kalman variance added per predict step
        measurement_noise: Fixed Kalman measurement noise
        max_buffer_size: Fused-history / per-source pending buffer size
        max_accuracy_threshold: Reject samples less accurate than this (m)
        max_speed_threshold: Reject reported or implied speeds above this (m/s)
        position_smoothing_factor: Exponential smoothing factor for lat/lon
        speed_smoothing_factor: Exponential smoothing factor for speed
        heading_smoothing_factor: Circular smoothing factor for heading
        accuracy_weight_factor: Accuracy decay constant of the fusion weight (m)
        age_weight_factor: Age decay constant of the fusion weight (s)
        gps_weight: Source weight of the primary high-accuracy provider
        network_weight: Source weight of network fixes
        passive_weight: Source weight of passive fixes
        prediction_window: Fused points used for velocity estimation
        min_accuracy_m: Accuracy floor for the harmonic-mean accuracy fusion
    """

    process_noise: float = 1.0
    measurement_noise: float = 10.0
    max_buffer_size: int = 50
    max_accuracy_threshold: float = 200.0
    max_speed_threshold: float = 100.0      # 100 m/s = 360 km/h
    position_smoothing_factor: float = 0.3
    speed_smoothing_factor: float = 0.5
    heading_smoothing_factor: float = 0.4
    accuracy_weight_factor: float = 30.0
    age_weight_factor: float = 60.0
    gps_weight: float = 1.0
    network_weight: float = 0.7
    passive_weight: float = 0.5
    prediction_window: int = 5
    min_accuracy_m: float = 0.1

    def __post_init__(self):
        """Validate coefficients."""
        if self.process_noise < 0 or self.measurement_noise < 0:
            raise ValueError("Kalman noise terms cannot be negative")

        _check_positive('max_buffer_size', self.max_buffer_size)
        _check_positive('max_accuracy_threshold', self.max_accuracy_threshold)
        _check_positive('max_speed_threshold', self.max_speed_threshold)
        _check_positive('accuracy_weight_factor', self.accuracy_weight_factor)
        _check_positive('age_weight_factor', self.age_weight_factor)
        _check_positive('min_accuracy_m', self.min_accuracy_m)

        if self.prediction_window < 2:
            raise ValueError(f"prediction_window must be >= 2: {self.prediction_window}")

        _check_factor('position_smoothing_factor', self.position_smoothing_factor)
        _check_factor('speed_smoothing_factor', self.speed_smoothing_factor)
        _check_factor('heading_smoothing_factor', self.heading_smoothing_factor)

        for name in ('gps_weight', 'network_weight', 'passive_weight'):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")

    def source_weight(self, source: SourceType) -> float:
        """Configured weight for a provider class."""
        return {
            SourceType.GPS: self.gps_weight,
            SourceType.NETWORK: self.network_weight,
            SourceType.PASSIVE: self.passive_weight,
        }.get(source, 0.0)


@dataclass
class ClassifierConfig:
    """
    Thresholds for the activity classifier.

    Bands are trapezoids (a, b, c, d): membership rises from a to b,
    is 1 between b and c, and falls to 0 at d.

    Attributes:
        gravity: Gravity removed from accelerometer magnitude (m/s²)
        min_sensor_samples: Accelerometer samples needed for sensor evidence
        min_location_points: Location points needed for speed evidence
        speed_bands: Average-speed band per motion state (m/s)
        walking_step_hz: Step cadence band for walking
        running_step_hz: Step cadence band for running
        step_search_hz: Frequency range searched for a step peak
        min_step_power_ratio: Share of band power the step peak must hold
        min_step_std: Minimum acceleration std before a step peak is searched
        analysis_window_s: Only samples this recent are analysed (s)
        vibration_bands: Acceleration-std band per state (m/s²)
        speed_evidence_weight: Weight of speed evidence when both sources exist
        sensor_evidence_weight: Weight of sensor evidence when both sources exist
        speed_only_priors: Per-state multiplier when only location data exists
        sensor_only_priors: Per-state multiplier when only sensor data exists
        single_source_coverage: Confidence multiplier with one evidence source
        ambiguity_penalty: Confidence reduction scaled by runner-up/best score
        moving_speed_m_s: Minimum speed for a heading to count toward stability
    """

    gravity: float = 9.80665
    min_sensor_samples: int = 20
    min_location_points: int = 2
    speed_bands: Dict[str, Band] = field(default_factory=lambda: {
        'stationary': (0.0, 0.0, 0.3, 0.6),
        'walking': (0.3, 0.6, 1.8, 2.5),
        'running': (1.8, 2.5, 5.0, 6.5),
        'cycling': (2.5, 4.0, 8.0, 11.0),
        'driving': (6.0, 9.0, 50.0, 70.0),
        'transit': (6.0, 9.0, 50.0, 70.0),
    })
    walking_step_hz: Band = (1.2, 1.5, 2.2, 2.5)
    running_step_hz: Band = (2.2, 2.5, 3.5, 4.0)
    step_search_hz: Tuple[float, float] = (0.8, 4.0)
    min_step_power_ratio: float = 0.2
    min_step_std: float = 0.3
    analysis_window_s: float = 30.0
    vibration_bands: Dict[str, Band] = field(default_factory=lambda: {
        'stationary': (0.0, 0.0, 0.15, 0.3),
        'cycling': (0.5, 1.0, 3.0, 5.0),
        'driving': (0.15, 0.3, 1.5, 3.0),
        'transit': (0.0, 0.0, 0.15, 0.3),
    })
    speed_evidence_weight: float = 0.6
    sensor_evidence_weight: float = 0.4
    speed_only_priors: Dict[str, float] = field(default_factory=lambda: {
        'transit': 0.5,
    })
    sensor_only_priors: Dict[str, float] = field(default_factory=lambda: {
        'cycling': 0.7,
        'driving': 0.5,
        'transit': 0.3,
    })
    single_source_coverage: float = 0.85
    ambiguity_penalty: float = 0.3
    moving_speed_m_s: float = 0.5

    def __post_init__(self):
        """Validate thresholds."""
        _check_positive('gravity', self.gravity)
        _check_positive('analysis_window_s', self.analysis_window_s)
        for name, band in self.speed_bands.items():
            _check_band(f'speed_bands[{name}]', tuple(band))
        for name, band in self.vibration_bands.items():
            _check_band(f'vibration_bands[{name}]', tuple(band))
        _check_band('walking_step_hz', self.walking_step_hz)
        _check_band('running_step_hz', self.running_step_hz)

        if abs(self.speed_evidence_weight + self.sensor_evidence_weight - 1.0) > 1e-9:
            raise ValueError("Evidence weights must sum to 1")

        _check_factor('single_source_coverage', self.single_source_coverage)
        _check_factor('ambiguity_penalty', self.ambiguity_penalty)
        _check_factor('min_step_power_ratio', self.min_step_power_ratio)

    def speed_band(self, state: MotionState) -> Optional[Band]:
        return self.speed_bands.get(state.value)

    def vibration_band(self, state: MotionState) -> Optional[Band]:
        return self.vibration_bands.get(state.value)

    def speed_only_prior(self, state: MotionState) -> float:
        return self.speed_only_priors.get(state.value, 1.0)

    def sensor_only_prior(self, state: MotionState) -> float:
        return self.sensor_only_priors.get(state.value, 1.0)


@dataclass
class MotionConfig:
    """
    Configuration for the motion engine.

    Attributes:
        analysis_interval_s: Periodic analysis tick (s)
        cleanup_interval_s: Buffer retention sweep tick (s)
        buffer_retention_s: Maximum age of buffered samples (s)
        max_sensor_buffer: Per-sensor buffer size
        max_location_buffer: Fused-location buffer size
        max_statistics_history: Confidence history size
        transition_confidence_threshold: Minimum confidence to change state
        immediate_analysis: Analyse on every update instead of only on the tick
        classifier: Classification thresholds
    """

    analysis_interval_s: float = 5.0
    cleanup_interval_s: float = 60.0
    buffer_retention_s: float = 300.0
    max_sensor_buffer: int = 200
    max_location_buffer: int = 50
    max_statistics_history: int = 100
    transition_confidence_threshold: float = 0.7
    immediate_analysis: bool = False
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)

    def __post_init__(self):
        """Validate intervals and sizes."""
        _check_positive('analysis_interval_s', self.analysis_interval_s)
        _check_positive('cleanup_interval_s', self.cleanup_interval_s)
        _check_positive('buffer_retention_s', self.buffer_retention_s)
        _check_positive('max_sensor_buffer', self.max_sensor_buffer)
        _check_positive('max_location_buffer', self.max_location_buffer)
        _check_positive('max_statistics_history', self.max_statistics_history)
        _check_factor('transition_confidence_threshold', self.transition_confidence_threshold)


@dataclass
class MotionPolicy:
    """
    How fusion cadence and tolerance follow the motion state.

    Attributes:
        fusion_intervals_s: Fusion tick per motion state (s); states not
            listed use EngineConfig.fusion_interval_s
        speed_tolerance: Multiplier on max_speed_threshold per motion state
    """

    fusion_intervals_s: Dict[str, float] = field(default_factory=lambda: {
        'stationary': 15.0,
        'walking': 5.0,
        'running': 3.0,
        'cycling': 3.0,
        'driving': 2.0,
        'transit': 3.0,
    })
    speed_tolerance: Dict[str, float] = field(default_factory=lambda: {
        'driving': 1.5,
        'transit': 1.5,
    })

    def __post_init__(self):
        for name, interval in self.fusion_intervals_s.items():
            _check_positive(f'fusion_intervals_s[{name}]', interval)
        for name, tolerance in self.speed_tolerance.items():
            _check_positive(f'speed_tolerance[{name}]', tolerance)

    def interval_for(self, state: MotionState, default_s: float) -> float:
        return self.fusion_intervals_s.get(state.value, default_s)

    def tolerance_for(self, state: MotionState) -> float:
        return self.speed_tolerance.get(state.value, 1.0)


@dataclass
class EngineConfig:
    """
    Top-level configuration owned by the LocationEngine.

    Attributes:
        fusion: Fusion engine coefficients
        motion: Motion engine coefficients
        policy: Motion-state feedback into fusion cadence/tolerance
        enable_network_location: Accept NETWORK samples
        enable_passive_location: Accept PASSIVE samples
        fusion_interval_s: Default fusion tick (s)
        cleanup_interval_s: Pending-sample / history sweep tick (s)
        sample_retention_s: Maximum age of pending samples and fused history (s)
    """

    fusion: FusionConfig = field(default_factory=FusionConfig)
    motion: MotionConfig = field(default_factory=MotionConfig)
    policy: MotionPolicy = field(default_factory=MotionPolicy)
    enable_network_location: bool = True
    enable_passive_location: bool = True
    fusion_interval_s: float = 5.0
    cleanup_interval_s: float = 300.0
    sample_retention_s: float = 120.0

    def __post_init__(self):
        _check_positive('fusion_interval_s', self.fusion_interval_s)
        _check_positive('cleanup_interval_s', self.cleanup_interval_s)
        _check_positive('sample_retention_s', self.sample_retention_s)

    def is_source_enabled(self, source: SourceType) -> bool:
        if source == SourceType.NETWORK:
            return self.enable_network_location
        if source == SourceType.PASSIVE:
            return self.enable_passive_location
        return True

    def to_dict(self) -> dict:
        """Convert to a JSON-compatible dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'EngineConfig':
        """
        Build a config from a (possibly partial) mapping.

        Unknown keys raise ValueError so typos in config files surface.
        """
        data = dict(data or {})
        motion_data = dict(data.pop('motion', {}) or {})
        classifier_data = motion_data.pop('classifier', {}) or {}

        return cls(
            fusion=_build(FusionConfig, data.pop('fusion', {}) or {}),
            motion=_build(
                MotionConfig,
                motion_data,
                classifier=_build(ClassifierConfig, _tuplify(classifier_data)),
            ),
            policy=_build(MotionPolicy, data.pop('policy', {}) or {}),
            **_known(cls, data, exclude=('fusion', 'motion', 'policy')),
        )


def _known(cls, data: dict, exclude: Tuple[str, ...] = ()) -> dict:
    names = {f.name for f in fields(cls)} - set(exclude)
    unknown = set(data) - names
    if unknown:
        raise ValueError(f"Unknown {cls.__name__} keys: {sorted(unknown)}")
    return dict(data)


def _build(cls, data: dict, **extra):
    return cls(**_known(cls, data), **extra)


def _tuplify(data: dict) -> dict:
    """JSON has no tuples: turn band lists back into tuples."""
    result = {}
    for key, value in data.items():
        if isinstance(value, list):
            result[key] = tuple(value)
        elif isinstance(value, dict):
            result[key] = {k: tuple(v) if isinstance(v, list) else v for k, v in value.items()}
        else:
            result[key] = value
    return result
