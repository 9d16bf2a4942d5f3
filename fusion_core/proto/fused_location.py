"""
Fused Location Output Schema.

Defines the output of one fusion cycle plus the motion-state tag and the
typed provenance that replaces free-form metadata maps.
"""

from dataclasses import dataclass, field
from enum import Enum
import math
from typing import Optional, Tuple

from .raw_sample import LocationQuality, RawSample, SourceType
from fusion_core.geodesy import haversine_m, bearing_deg


class MotionState(Enum):
    """Classified activity context of the user."""

    UNKNOWN = "unknown"
    STATIONARY = "stationary"
    WALKING = "walking"
    RUNNING = "running"
    CYCLING = "cycling"
    DRIVING = "driving"
    TRANSIT = "transit"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


@dataclass(frozen=True)
class FusionProvenance:
    """
    How a fused location was produced.

    Attributes:
        source_count: Number of samples combined
        sources: Provider classes that contributed
        total_weight: Sum of fusion weights (0 for single-sample passthrough)
        kalman_filtered: Position went through a per-source Kalman filter
        kalman_gain: Mean Kalman gain of the last filter update
        smoothed: Exponential smoothing applied against the previous output
        predicted: Extrapolated position rather than a measurement
        prediction_horizon_s: Extrapolation horizon (predicted outputs only)
    """

    source_count: int = 1
    sources: Tuple[SourceType, ...] = ()
    total_weight: float = 0.0
    kalman_filtered: bool = False
    kalman_gain: float = 0.0
    smoothed: bool = False
    predicted: bool = False
    prediction_horizon_s: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            'source_count': self.source_count,
            'sources': [s.value for s in self.sources],
            'total_weight': self.total_weight,
            'kalman_filtered': self.kalman_filtered,
            'kalman_gain': self.kalman_gain,
            'smoothed': self.smoothed,
            'predicted': self.predicted,
            'prediction_horizon_s': self.prediction_horizon_s,
        }


@dataclass(frozen=True)
class FusedLocation:
    """
    Single smoothed, quality-scored position estimate.

    Produced once per fusion cycle and superseded (never mutated) by the
    next one.

    Attributes:
        latitude: Latitude in degrees
        longitude: Longitude in degrees
        accuracy: Fused accuracy radius in meters
        speed: Ground speed in m/s
        heading: Course in degrees [0, 360)
        timestamp: Latest contributing fix time (s)
        quality: Best contributing quality bucket
        motion_state: Motion context at fusion time
        altitude: Altitude in meters (optional)
        provenance: How this value was produced
    """

    latitude: float
    longitude: float
    accuracy: float
    speed: float
    heading: float
    timestamp: float
    quality: LocationQuality = LocationQuality.UNKNOWN
    motion_state: MotionState = MotionState.UNKNOWN
    altitude: Optional[float] = None
    provenance: FusionProvenance = field(default_factory=FusionProvenance)

    def __post_init__(self):
        """Validate fused location."""
        if self.accuracy < 0:
            raise ValueError(f"Accuracy cannot be negative: {self.accuracy}")

        if not 0.0 <= self.heading < 360.0:
            raise ValueError(f"Heading must be in [0, 360): {self.heading}")

    @classmethod
    def from_sample(
        cls,
        sample: RawSample,
        motion_state: MotionState = MotionState.UNKNOWN,
        provenance: Optional[FusionProvenance] = None,
    ) -> 'FusedLocation':
        """
        Carry a raw sample's fields over unchanged.

        Missing or non-finite speed/heading become 0.0 since a fused
        location always reports both.
        """
        return cls(
            latitude=sample.latitude,
            longitude=sample.longitude,
            altitude=sample.altitude,
            accuracy=sample.accuracy,
            speed=_finite_or_zero(sample.speed),
            heading=_finite_or_zero(sample.heading),
            timestamp=sample.timestamp,
            quality=sample.effective_quality,
            motion_state=motion_state,
            provenance=provenance or FusionProvenance(sources=(sample.source,)),
        )

    @property
    def position(self) -> Tuple[float, float]:
        """(latitude, longitude) in degrees."""
        return (self.latitude, self.longitude)

    def distance_to(self, other) -> float:
        """Great-circle distance in meters to anything with latitude/longitude."""
        return haversine_m(self.latitude, self.longitude, other.latitude, other.longitude)

    def bearing_to(self, other) -> float:
        """Initial bearing in degrees [0, 360) to another location."""
        return bearing_deg(self.latitude, self.longitude, other.latitude, other.longitude)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'latitude': self.latitude,
            'longitude': self.longitude,
            'altitude': self.altitude,
            'accuracy': self.accuracy,
            'speed': self.speed,
            'heading': self.heading,
            'timestamp': self.timestamp,
            'quality': self.quality.name,
            'motion_state': self.motion_state.value,
            'provenance': self.provenance.to_dict(),
        }


def _finite_or_zero(value: Optional[float]) -> float:
    if value is None or not math.isfinite(value):
        return 0.0
    return value
