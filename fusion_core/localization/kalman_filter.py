"""
Scalar Kalman filter and the latitude/longitude pair used per source.

One ScalarKalmanFilter tracks one quantity. The fusion engine keeps a
LocationKalmanFilter (latitude + longitude) per provider source.

Notes:
    - The first measurement snaps the state: it is returned unchanged
    - Measurement noise is a fixed configured constant; reported accuracy
      only seeds the initial variance (accuracy²)
"""

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class EstimatorState:
    """
    Snapshot of a LocationKalmanFilter.

    Attributes:
        latitude: Latitude estimate (deg)
        longitude: Longitude estimate (deg)
        latitude_variance: Latitude estimate variance
        longitude_variance: Longitude estimate variance
        last_gain: Mean of the two axis gains from the last update
        timestamp: Time of the last update (s)
    """

    latitude: float
    longitude: float
    latitude_variance: float
    longitude_variance: float
    last_gain: float
    timestamp: float


class ScalarKalmanFilter:
    """
    1D random-walk Kalman filter.

    Usage:
        kf = ScalarKalmanFilter(process_noise=1.0, measurement_noise=10.0)
        kf.update(22.30, variance_estimate=25.0, timestamp=0.0)   # snaps
        kf.update(22.31, variance_estimate=25.0, timestamp=1.0)   # filtered
        print(kf.last_gain)
    """

    def __init__(self, process_noise: float = 1.0, measurement_noise: float = 10.0):
        self.process_noise = process_noise
        self.measurement_noise = measurement_noise

        self._state: Optional[float] = None
        self._variance = 0.0
        self._last_gain = 0.0
        self._last_timestamp: Optional[float] = None

    def is_initialized(self) -> bool:
        return self._state is not None

    @property
    def state(self) -> Optional[float]:
        return self._state

    @property
    def variance(self) -> float:
        return self._variance

    @property
    def last_gain(self) -> float:
        return self._last_gain

    @property
    def last_timestamp(self) -> Optional[float]:
        return self._last_timestamp

    def update(self, value: float, variance_estimate: float, timestamp: float) -> float:
        """
        Run one predict + update step.

        Args:
            value: Measured value
            variance_estimate: Measurement variance, used only to seed the
                state on the first call
            timestamp: Measurement time (s)

        Returns:
            Filtered value (the raw value on the first call)
        """
        self._last_timestamp = timestamp

        if self._state is None:
            self._state = value
            self._variance = variance_estimate
            return value

        # Predict
        self._variance += self.process_noise

        # Update
        denominator = self._variance + self.measurement_noise
        gain = self._variance / denominator if denominator > 0 else 0.0
        self._state += gain * (value - self._state)
        self._variance *= (1.0 - gain)
        self._last_gain = gain

        return self._state

    def update_noise(self, process_noise: float, measurement_noise: float):
        self.process_noise = process_noise
        self.measurement_noise = measurement_noise

    def reset(self):
        """Forget the state; the next update snaps again."""
        self._state = None
        self._variance = 0.0
        self._last_gain = 0.0
        self._last_timestamp = None


class LocationKalmanFilter:
    """
    Latitude/longitude filter pair for one provider source.

    Usage:
        kf = LocationKalmanFilter(process_noise=1.0, measurement_noise=10.0)
        lat, lon = kf.update(22.30, 114.17, accuracy=5.0, timestamp=0.0)
    """

    def __init__(self, process_noise: float = 1.0, measurement_noise: float = 10.0):
        self._latitude = ScalarKalmanFilter(process_noise, measurement_noise)
        self._longitude = ScalarKalmanFilter(process_noise, measurement_noise)
        self.update_count = 0

    def is_initialized(self) -> bool:
        return self._latitude.is_initialized() and self._longitude.is_initialized()

    def update(
        self,
        latitude: float,
        longitude: float,
        accuracy: float,
        timestamp: float,
    ) -> Tuple[float, float]:
        """
        Filter one position fix.

        Args:
            latitude: Measured latitude (deg)
            longitude: Measured longitude (deg)
            accuracy: Reported accuracy (m); accuracy² seeds the variance
            timestamp: Fix time (s)

        Returns:
            (latitude, longitude) estimate
        """
        variance = accuracy * accuracy
        filtered_lat = self._latitude.update(latitude, variance, timestamp)
        filtered_lon = self._longitude.update(longitude, variance, timestamp)
        self.update_count += 1
        return filtered_lat, filtered_lon

    @property
    def last_gain(self) -> float:
        return (self._latitude.last_gain + self._longitude.last_gain) / 2.0

    @property
    def state(self) -> Optional[EstimatorState]:
        """Current estimate, or None before the first measurement."""
        if not self.is_initialized():
            return None
        return EstimatorState(
            latitude=self._latitude.state,
            longitude=self._longitude.state,
            latitude_variance=self._latitude.variance,
            longitude_variance=self._longitude.variance,
            last_gain=self.last_gain,
            timestamp=self._latitude.last_timestamp,
        )

    def update_noise(self, process_noise: float, measurement_noise: float):
        self._latitude.update_noise(process_noise, measurement_noise)
        self._longitude.update_noise(process_noise, measurement_noise)

    def reset(self):
        self._latitude.reset()
        self._longitude.reset()
        self.update_count = 0
