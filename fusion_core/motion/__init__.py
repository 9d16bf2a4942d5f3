"""
Motion Module: Activity features, classification, state transitions.

Key classes:
- MotionAnalyzer: Sensor / track feature extraction (rFFT step cadence)
- ActivityClassifier: Fuzzy band classifier producing (state, confidence)
- TransitionDetector: Confidence gate for state changes
- MotionEngine: Buffers, periodic analysis, motion_state_stream
"""

from .motion_analyzer import (
    LocationAnalysis,
    MotionAnalyzer,
    SensorAnalysis,
    estimate_step_frequency,
    mean_resultant_length,
)
from .activity_classifier import ActivityClassifier, trapezoid
from .transition_detector import StateTransition, TransitionDetector
from .motion_engine import MotionEngine, MotionMetrics

__all__ = [
    'LocationAnalysis',
    'MotionAnalyzer',
    'SensorAnalysis',
    'estimate_step_frequency',
    'mean_resultant_length',
    'ActivityClassifier',
    'trapezoid',
    'StateTransition',
    'TransitionDetector',
    'MotionEngine',
    'MotionMetrics',
]
