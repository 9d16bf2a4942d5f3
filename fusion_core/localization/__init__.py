"""
Localization Module: Outlier rejection, filtering, fusion, prediction.

Key classes:
- ScalarKalmanFilter / LocationKalmanFilter: Per-source state estimator
- OutlierGuard: Physical and contextual bounds for raw samples
- FusionEngine: One fusion cycle per call, plus prediction and diagnostics

Key functions:
- location_weight / combine: Weighted multi-source combination
- smooth_value / smooth_heading / smooth_location: Exponential smoothing
- predict: Linear extrapolation of the fused track
"""

from .kalman_filter import (
    EstimatorState,
    ScalarKalmanFilter,
    LocationKalmanFilter,
)
from .outlier_guard import OutlierGuard
from .weighted_fusion import location_weight, combine
from .smoothing import smooth_value, smooth_heading, smooth_location
from .prediction import predict
from .fusion_engine import FusionEngine, FusionQualityMetrics

__all__ = [
    'EstimatorState',
    'ScalarKalmanFilter',
    'LocationKalmanFilter',
    'OutlierGuard',
    'location_weight',
    'combine',
    'smooth_value',
    'smooth_heading',
    'smooth_location',
    'predict',
    'FusionEngine',
    'FusionQualityMetrics',
]
