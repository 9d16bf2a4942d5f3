"""
Exponential smoothing of fused output against the previous output.

Heading is a circular quantity: the difference is wrapped into
[-180, 180] before blending so 350° -> 10° moves through north.
"""

from dataclasses import replace

from fusion_core.config import FusionConfig
from fusion_core.geodesy import normalize_heading
from fusion_core.proto.fused_location import FusedLocation


def smooth_value(new: float, old: float, factor: float) -> float:
    """(1 - factor) * old + factor * new"""
    return (1.0 - factor) * old + factor * new


def smooth_heading(new: float, old: float, factor: float) -> float:
    """
    Circular exponential smoothing.

    Args:
        new: Current heading (deg)
        old: Previous smoothed heading (deg)
        factor: Weight of the current heading (0-1)

    Returns:
        Smoothed heading in [0, 360)
    """
    diff = new - old
    if diff > 180.0:
        diff -= 360.0
    elif diff < -180.0:
        diff += 360.0
    return normalize_heading(old + factor * diff)


def smooth_location(
    current: FusedLocation,
    previous: FusedLocation,
    config: FusionConfig,
) -> FusedLocation:
    """
    Smooth a new fused location against the previously published one.

    Latitude/longitude use position_smoothing_factor, speed uses
    speed_smoothing_factor, heading uses heading_smoothing_factor.
    Accuracy, altitude and quality are taken from current.
    """
    position_f = config.position_smoothing_factor
    return replace(
        current,
        latitude=smooth_value(current.latitude, previous.latitude, position_f),
        longitude=smooth_value(current.longitude, previous.longitude, position_f),
        speed=smooth_value(current.speed, previous.speed, config.speed_smoothing_factor),
        heading=smooth_heading(current.heading, previous.heading, config.heading_smoothing_factor),
        provenance=replace(current.provenance, smoothed=True),
    )
