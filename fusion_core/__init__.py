"""
Location Fusion Core Package.

Multi-source location fusion and motion classification for the
family location-sharing backend.

Package structure:
- io: Event channels, periodic tasks, bounded time buffers
- proto: Sample and output value types
- localization: Kalman filtering, outlier guard, weighted fusion, smoothing, prediction
- motion: Sensor analysis, activity classification, transition gating
- domain: LocationEngine orchestrator
- metrics: Sample accounting, reject reasons, rolling series
"""

__version__ = "0.3.0"
__author__ = "Location Platform Team"

from .config import (
    EngineConfig,
    FusionConfig,
    MotionConfig,
    ClassifierConfig,
    MotionPolicy,
    configure_logging,
)
from .domain import LocationEngine, EngineMetrics, EngineStatus

__all__ = [
    'EngineConfig',
    'FusionConfig',
    'MotionConfig',
    'ClassifierConfig',
    'MotionPolicy',
    'configure_logging',
    'LocationEngine',
    'EngineMetrics',
    'EngineStatus',
]
