"""
Protocol Module: Sample and output value types.

All types are immutable; a new fusion or analysis cycle supersedes the
previous value instead of mutating it.
"""

from .raw_sample import (
    RawSample,
    SourceType,
    LocationQuality,
)
from .fused_location import (
    FusedLocation,
    FusionProvenance,
    MotionState,
)
from .sensor_sample import (
    SensorSample,
    SensorType,
)
from .activity import (
    ActivityMetrics,
    MotionResult,
)

__all__ = [
    'RawSample',
    'SourceType',
    'LocationQuality',
    'FusedLocation',
    'FusionProvenance',
    'MotionState',
    'SensorSample',
    'SensorType',
    'ActivityMetrics',
    'MotionResult',
]
