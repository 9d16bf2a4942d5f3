"""
Inertial sensor sample schema.

Readings from the accelerometer (m/s²), gyroscope (rad/s) and
magnetometer (μT). Ephemeral: only kept inside bounded motion buffers.
"""

from dataclasses import dataclass
from enum import Enum
import math


class SensorType(Enum):
    """Inertial sensor producing a reading."""

    ACCELEROMETER = "accelerometer"
    GYROSCOPE = "gyroscope"
    MAGNETOMETER = "magnetometer"


@dataclass(frozen=True)
class SensorSample:
    """
    3-axis sensor reading.

    Attributes:
        sensor: Sensor type
        x, y, z: Axis values in the sensor's native unit
        timestamp: Reading time (seconds, same clock as location samples)
    """

    sensor: SensorType
    x: float
    y: float
    z: float
    timestamp: float

    @property
    def magnitude(self) -> float:
        """Euclidean norm of the 3 axes."""
        return math.sqrt(self.x * self.x + self.y * self.y + self.z * self.z)

    def to_dict(self) -> dict:
        return {
            'sensor': self.sensor.value,
            'x': self.x,
            'y': self.y,
            'z': self.z,
            'timestamp': self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'SensorSample':
        return cls(
            sensor=SensorType(data['sensor']),
            x=float(data['x']),
            y=float(data['y']),
            z=float(data['z']),
            timestamp=float(data['timestamp']),
        )
