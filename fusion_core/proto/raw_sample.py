"""
Raw location sample schema.

Defines the input format produced by the external location providers
(GPS, network, passive) and the ordered quality buckets attached to
every location value.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional
import math

from fusion_core.geodesy import normalize_heading


class SourceType(Enum):
    """Provider class of a raw location sample."""

    GPS = "gps"            # Primary high-accuracy provider
    NETWORK = "network"    # Cell / Wi-Fi based
    PASSIVE = "passive"    # Opportunistic fixes requested by other apps


class LocationQuality(IntEnum):
    """Ordered confidence bucket, derived primarily from accuracy."""

    UNKNOWN = 0
    VERY_POOR = 1
    POOR = 2
    FAIR = 3
    GOOD = 4
    EXCELLENT = 5

    @property
    def accuracy_threshold(self) -> float:
        """Worst accuracy (m) still inside this bucket."""
        return _ACCURACY_THRESHOLDS.get(self, float('inf'))

    @classmethod
    def from_accuracy(cls, accuracy_m: float) -> 'LocationQuality':
        """
        Bucket a reported accuracy radius.

        Args:
            accuracy_m: Horizontal accuracy radius in meters

        Returns:
            Matching LocationQuality (VERY_POOR beyond 100m)
        """
        if accuracy_m is None or not math.isfinite(accuracy_m):
            return cls.UNKNOWN
        for quality in (cls.EXCELLENT, cls.GOOD, cls.FAIR, cls.POOR):
            if accuracy_m <= quality.accuracy_threshold:
                return quality
        return cls.VERY_POOR

    @classmethod
    def level_count(cls) -> int:
        """Number of quality levels (used to scale fusion weights)."""
        return len(cls)


_ACCURACY_THRESHOLDS = {
    LocationQuality.EXCELLENT: 5.0,
    LocationQuality.GOOD: 15.0,
    LocationQuality.FAIR: 50.0,
    LocationQuality.POOR: 100.0,
}


@dataclass(frozen=True)
class RawSample:
    """
    Raw location sample from one provider.

    Attributes:
        latitude: Latitude in degrees
        longitude: Longitude in degrees
        accuracy: Horizontal accuracy radius in meters (>= 0)
        timestamp: Fix time (seconds, monotonic-comparable)
        source: Provider class
        altitude: Altitude in meters (optional)
        speed: Ground speed in m/s (optional)
        heading: Course over ground in degrees, normalized to [0, 360) (optional)
        quality: Provider quality hint (UNKNOWN = derive from accuracy)

    Notes:
        - Range checks (|lat| <= 90, ...) are left to the outlier guard so
          out-of-range fixes can be counted instead of raising
        - Consumed exactly once per fusion cycle
    """

    latitude: float
    longitude: float
    accuracy: float
    timestamp: float
    source: SourceType = SourceType.GPS
    altitude: Optional[float] = None
    speed: Optional[float] = None
    heading: Optional[float] = None
    quality: LocationQuality = LocationQuality.UNKNOWN

    def __post_init__(self):
        """Validate sample and normalize heading."""
        if self.accuracy is None or self.accuracy < 0:
            raise ValueError(f"Accuracy cannot be negative: {self.accuracy}")

        if self.heading is not None and math.isfinite(self.heading):
            object.__setattr__(self, 'heading', normalize_heading(self.heading))

    @property
    def effective_quality(self) -> LocationQuality:
        """Quality hint, or the accuracy-derived bucket when no hint was given."""
        if self.quality != LocationQuality.UNKNOWN:
            return self.quality
        return LocationQuality.from_accuracy(self.accuracy)

    @property
    def has_finite_position(self) -> bool:
        """True if latitude and longitude are finite numbers."""
        return math.isfinite(self.latitude) and math.isfinite(self.longitude)

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
            'source': self.source.value,
            'quality': self.quality.name,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'RawSample':
        """Build a sample from a to_dict()-style mapping."""
        quality = data.get('quality')
        return cls(
            latitude=float(data['latitude']),
            longitude=float(data['longitude']),
            accuracy=float(data.get('accuracy', 10.0)),
            timestamp=float(data['timestamp']),
            source=SourceType(data.get('source', SourceType.GPS.value)),
            altitude=_optional_float(data.get('altitude')),
            speed=_optional_float(data.get('speed')),
            heading=_optional_float(data.get('heading')),
            quality=LocationQuality[quality] if quality else LocationQuality.UNKNOWN,
        )


def _optional_float(value) -> Optional[float]:
    return None if value is None else float(value)
