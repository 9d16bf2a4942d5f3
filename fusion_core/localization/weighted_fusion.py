"""
Weighted multi-source combination of filtered samples.

Per-sample weight:
    exp(-accuracy / accuracy_weight_factor)
    × exp(-age / age_weight_factor)
    × source_weight(source)
    × (quality_rank + 1) / quality_level_count

Position, altitude, speed and heading are weight-normalized arithmetic
means; accuracy is the weighted harmonic mean Σw / Σ(w / accuracy).
"""

import logging
import math
import time
from typing import List, Optional, Sequence

import numpy as np

from fusion_core.config import FusionConfig
from fusion_core.geodesy import normalize_heading
from fusion_core.proto.raw_sample import LocationQuality, RawSample
from fusion_core.proto.fused_location import FusedLocation, FusionProvenance, MotionState

logger = logging.getLogger(__name__)


def location_weight(sample: RawSample, now: float, config: FusionConfig) -> float:
    """
    Fusion weight of one sample.

    Args:
        sample: Filtered sample
        now: Fusion time (s); samples from the future count as age 0
        config: Fusion coefficients

    Returns:
        Weight >= 0 (non-finite intermediate results give 0)
    """
    age = max(0.0, now - sample.timestamp)
    quality_rank = int(sample.effective_quality)

    weight = (
        math.exp(-sample.accuracy / config.accuracy_weight_factor)
        * math.exp(-age / config.age_weight_factor)
        * config.source_weight(sample.source)
        * (quality_rank + 1) / LocationQuality.level_count()
    )

    if not math.isfinite(weight) or weight < 0:
        return 0.0
    return weight


def _weighted_mean(values: Sequence[Optional[float]], weights: np.ndarray) -> Optional[float]:
    """Weighted mean over the entries that are present and finite."""
    mask = np.array([v is not None and math.isfinite(v) for v in values], dtype=bool)
    if not mask.any():
        return None

    w = weights[mask]
    total = w.sum()
    if total <= 0:
        return None

    v = np.array([v for v, keep in zip(values, mask) if keep], dtype=float)
    return float(np.dot(w, v) / total)


def combine(
    samples: List[RawSample],
    now: Optional[float] = None,
    config: Optional[FusionConfig] = None,
    motion_state: MotionState = MotionState.UNKNOWN,
) -> Optional[FusedLocation]:
    """
    Combine the samples of one fusion cycle into a single location.

    Args:
        samples: Outlier-checked, Kalman-filtered samples (any sources)
        now: Fusion time for the age term (default: wall clock)
        config: Fusion coefficients (uses defaults if None)
        motion_state: Tag for the output

    Returns:
        FusedLocation, or None when samples is empty

    Notes:
        - One sample: its fields are returned unchanged
        - Zero total weight: the first sample is returned unmodified
        - Output quality is the best contributor's, timestamp the latest
    """
    if not samples:
        return None

    config = config or FusionConfig()
    now = time.time() if now is None else now

    if len(samples) == 1:
        sample = samples[0]
        return FusedLocation.from_sample(
            sample,
            motion_state,
            FusionProvenance(
                source_count=1,
                sources=(sample.source,),
                total_weight=location_weight(sample, now, config),
            ),
        )

    weights = np.array([location_weight(s, now, config) for s in samples], dtype=float)
    total_weight = float(weights.sum())

    if total_weight <= 0:
        logger.warning(f"Zero total fusion weight for {len(samples)} samples, using first sample")
        return FusedLocation.from_sample(samples[0], motion_state)

    lats = np.array([s.latitude for s in samples], dtype=float)
    lons = np.array([s.longitude for s in samples], dtype=float)
    latitude = float(np.dot(weights, lats) / total_weight)
    longitude = float(np.dot(weights, lons) / total_weight)

    altitude = _weighted_mean([s.altitude for s in samples], weights)
    speed = _weighted_mean([s.speed for s in samples], weights)
    heading = _weighted_mean([s.heading for s in samples], weights)

    accuracies = np.maximum(
        np.array([s.accuracy for s in samples], dtype=float),
        config.min_accuracy_m,
    )
    accuracy = total_weight / float(np.sum(weights / accuracies))

    sources = tuple(dict.fromkeys(s.source for s in samples))

    return FusedLocation(
        latitude=latitude,
        longitude=longitude,
        altitude=altitude,
        accuracy=accuracy,
        speed=speed if speed is not None else 0.0,
        heading=normalize_heading(heading) if heading is not None else 0.0,
        timestamp=max(s.timestamp for s in samples),
        quality=max(s.effective_quality for s in samples),
        motion_state=motion_state,
        provenance=FusionProvenance(
            source_count=len(samples),
            sources=sources,
            total_weight=total_weight,
        ),
    )
