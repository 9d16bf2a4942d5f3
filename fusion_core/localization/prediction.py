"""
Short-horizon position prediction by linear extrapolation.
"""

import logging
import math
from dataclasses import replace
from typing import Optional, Sequence

import numpy as np

from fusion_core.geodesy import normalize_heading
from fusion_core.proto.raw_sample import LocationQuality
from fusion_core.proto.fused_location import FusedLocation

logger = logging.getLogger(__name__)


def predict(
    history: Sequence[FusedLocation],
    future_s: float,
    window: int = 5,
) -> Optional[FusedLocation]:
    """
    Extrapolate the fused track future_s seconds ahead.

    Args:
        history: Fused locations, oldest first
        future_s: Prediction horizon (s, >= 0)
        window: Number of most recent points used for velocity

    Returns:
        Predicted FusedLocation, or None with fewer than 2 usable points

    Notes:
        - Velocity is the mean of pairwise lat/lon deltas per second;
          pairs with non-positive elapsed time are skipped
        - Heading = atan2(lon velocity, lat velocity)
        - Accuracy is doubled and quality set to FAIR
    """
    if future_s < 0 or not math.isfinite(future_s):
        logger.debug(f"Invalid prediction horizon: {future_s}")
        return None

    points = list(history)[-window:]
    if len(points) < 2:
        return None

    velocities = []
    for a, b in zip(points, points[1:]):
        dt = b.timestamp - a.timestamp
        if dt <= 0:
            continue
        velocities.append(((b.latitude - a.latitude) / dt, (b.longitude - a.longitude) / dt))

    if not velocities:
        return None

    lat_velocity, lon_velocity = np.mean(np.array(velocities), axis=0)
    lat_velocity = float(lat_velocity)
    lon_velocity = float(lon_velocity)

    last = points[-1]
    heading = normalize_heading(math.degrees(math.atan2(lon_velocity, lat_velocity)))
    speed = float(np.mean([p.speed for p in points]))

    return replace(
        last,
        latitude=last.latitude + lat_velocity * future_s,
        longitude=last.longitude + lon_velocity * future_s,
        accuracy=last.accuracy * 2.0,
        speed=speed,
        heading=heading,
        timestamp=last.timestamp + future_s,
        quality=LocationQuality.FAIR,
        provenance=replace(last.provenance, predicted=True, prediction_horizon_s=future_s),
    )
