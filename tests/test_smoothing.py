"""
Unit tests for exponential smoothing.
"""

import pytest

from fusion_core.config import FusionConfig
from fusion_core.localization import smooth_heading, smooth_location, smooth_value


class TestSmoothValue:
    """Linear exponential smoothing."""

    def test_formula(self):
        assert smooth_value(10.0, 0.0, 0.3) == pytest.approx(3.0)

    def test_factor_bounds(self):
        assert smooth_value(10.0, 2.0, 0.0) == 2.0
        assert smooth_value(10.0, 2.0, 1.0) == 10.0


class TestSmoothHeading:
    """Circular smoothing."""

    def test_wraparound_through_north(self):
        """old=350, new=10, factor=0.5 -> 0, not 180."""
        assert smooth_heading(10.0, 350.0, 0.5) == pytest.approx(0.0)

    def test_wraparound_other_direction(self):
        assert smooth_heading(350.0, 10.0, 0.5) == pytest.approx(0.0)

    def test_partial_step_across_north(self):
        assert smooth_heading(10.0, 350.0, 0.25) == pytest.approx(355.0)

    def test_no_wrap(self):
        assert smooth_heading(100.0, 80.0, 0.5) == pytest.approx(90.0)

    def test_opposite_direction(self):
        """diff of exactly 180 is not wrapped."""
        assert smooth_heading(180.0, 0.0, 0.5) == pytest.approx(90.0)

    @pytest.mark.parametrize("new,old,factor", [
        (359.9, 0.1, 0.7),
        (0.0, 359.0, 1.0),
        (270.0, 90.0, 0.4),
    ])
    def test_result_in_range(self, new, old, factor):
        result = smooth_heading(new, old, factor)
        assert 0.0 <= result < 360.0


class TestSmoothLocation:
    """Smoothing a fused location against the previous output."""

    def test_fields(self, make_fused):
        config = FusionConfig()
        previous = make_fused(latitude=22.0, longitude=114.0, speed=0.0, heading=350.0)
        current = make_fused(latitude=23.0, longitude=115.0, speed=10.0, heading=10.0,
                             accuracy=3.0, timestamp=1001.0)

        smoothed = smooth_location(current, previous, config)

        assert smoothed.latitude == pytest.approx(22.3)
        assert smoothed.longitude == pytest.approx(114.3)
        assert smoothed.speed == pytest.approx(5.0)
        assert smoothed.heading == pytest.approx(358.0)
        assert smoothed.accuracy == 3.0
        assert smoothed.timestamp == 1001.0
        assert smoothed.provenance.smoothed
