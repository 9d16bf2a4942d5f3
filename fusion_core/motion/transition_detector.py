"""
Confidence gating of motion-state transitions.
"""

from dataclasses import dataclass
from typing import Optional

from fusion_core.proto.fused_location import MotionState


@dataclass(frozen=True)
class StateTransition:
    """
    Outcome of evaluating a candidate state against the current one.

    Attributes:
        from_state: State before the evaluation
        to_state: Candidate state
        confidence: Candidate confidence (0-1)
        timestamp: Analysis time (s)
        is_valid: True if the transition is accepted
    """

    from_state: MotionState
    to_state: MotionState
    confidence: float
    timestamp: Optional[float] = None
    is_valid: bool = False

    @property
    def is_change(self) -> bool:
        return self.from_state != self.to_state

    def to_dict(self) -> dict:
        return {
            'from_state': self.from_state.value,
            'to_state': self.to_state.value,
            'confidence': self.confidence,
            'timestamp': self.timestamp,
            'is_valid': self.is_valid,
        }


class TransitionDetector:
    """
    Accept a state change only with confidence >= threshold.

    Usage:
        detector = TransitionDetector(threshold=0.7)
        transition = detector.evaluate(MotionState.WALKING, MotionState.DRIVING, 0.9)
        if transition.is_valid:
            ...
    """

    def __init__(self, threshold: float = 0.7):
        self.threshold = threshold

    def evaluate(
        self,
        current: MotionState,
        candidate: MotionState,
        confidence: float,
        timestamp: Optional[float] = None,
    ) -> StateTransition:
        is_valid = candidate != current and confidence >= self.threshold
        return StateTransition(current, candidate, confidence, timestamp, is_valid)
