"""
Motion analysis output schema.

ActivityMetrics are recomputed each analysis cycle and replaced
wholesale; MotionResult pairs them with a classified state.
"""

from dataclasses import dataclass, field
from typing import Optional

from .fused_location import MotionState


@dataclass(frozen=True)
class ActivityMetrics:
    """
    Activity features derived from buffered sensor and location data.

    Attributes:
        average_speed: Mean ground speed (m/s)
        max_speed: Peak ground speed (m/s)
        average_acceleration: Mean dynamic acceleration, gravity removed (m/s²)
        step_frequency: Dominant step cadence (Hz, 0 if none detected)
        movement_variance: Variance of acceleration magnitude (m²/s⁴)
        direction_stability: Mean resultant length of headings (0-1)
    """

    average_speed: float = 0.0
    max_speed: float = 0.0
    average_acceleration: float = 0.0
    step_frequency: float = 0.0
    movement_variance: float = 0.0
    direction_stability: float = 0.0

    @classmethod
    def empty(cls) -> 'ActivityMetrics':
        return cls()

    def to_dict(self) -> dict:
        return {
            'average_speed': self.average_speed,
            'max_speed': self.max_speed,
            'average_acceleration': self.average_acceleration,
            'step_frequency': self.step_frequency,
            'movement_variance': self.movement_variance,
            'direction_stability': self.direction_stability,
        }


@dataclass(frozen=True)
class MotionResult:
    """
    Candidate (or current) motion classification.

    Attributes:
        motion_state: Classified state
        confidence: Classification confidence (0-1)
        metrics: Features the classification was based on
        timestamp: Analysis time (s)
        scores: Per-state evidence scores (diagnostics)
    """

    motion_state: MotionState
    confidence: float
    metrics: ActivityMetrics = field(default_factory=ActivityMetrics)
    timestamp: Optional[float] = None
    scores: dict = field(default_factory=dict)

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Confidence must be in [0,1]: {self.confidence}")

    @classmethod
    def unknown(cls, timestamp: Optional[float] = None) -> 'MotionResult':
        return cls(MotionState.UNKNOWN, 0.0, ActivityMetrics.empty(), timestamp)
