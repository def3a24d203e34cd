"""Sensor sample types.

Each sensor kind has its own sample dataclass carrying a ``kind`` tag. The
union ``SensorSample`` is what the room mapper routes; ``sample_from_dict``
rebuilds samples from recorded walkthrough files.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, List, Optional, Tuple, Union

import numpy as np


class SensorKind(str, Enum):
    """Sensor kinds known to the mapper."""
    GNSS = "gnss"
    BAROMETER = "barometer"
    IMU = "imu"
    LIDAR = "lidar"


@dataclass(frozen=True)
class Vec3:
    """3-component vector (m/s², rad/s or µT depending on the sensor)."""
    x: float
    y: float
    z: float

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in (self.x, self.y, self.z))

    def to_tuple(self) -> Tuple[float, float, float]:
        return (self.x, self.y, self.z)


@dataclass(frozen=True)
class Orientation:
    """Device attitude. Radians in samples, degrees when reported."""
    pitch: float
    roll: float
    yaw: float

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in (self.pitch, self.roll, self.yaw))


@dataclass(frozen=True)
class GnssSample:
    """Single GNSS fix."""
    kind: ClassVar[SensorKind] = SensorKind.GNSS

    latitude: float
    longitude: float
    elevation_m: float
    horizontal_accuracy_m: float
    timestamp_ms: float


@dataclass(frozen=True)
class BarometricSample:
    """Single barometric altimeter reading."""
    kind: ClassVar[SensorKind] = SensorKind.BAROMETER

    pressure_hpa: float
    temperature_c: float
    relative_altitude_m: float
    timestamp_ms: float


@dataclass(frozen=True)
class InertialSample:
    """Single IMU sample."""
    kind: ClassVar[SensorKind] = SensorKind.IMU

    acceleration: Vec3  # m/s², sensor frame, gravity included
    gyroscope: Vec3  # rad/s
    orientation: Orientation  # radians
    timestamp_ms: float
    magnetometer: Optional[Vec3] = None  # µT


@dataclass(frozen=True)
class LidarPoint:
    """Single LiDAR return in meters."""
    x: float
    y: float
    z: float
    intensity: Optional[float] = None

    def is_finite(self) -> bool:
        if not all(math.isfinite(v) for v in (self.x, self.y, self.z)):
            return False
        return self.intensity is None or math.isfinite(self.intensity)


@dataclass(frozen=True)
class LidarScan:
    """One LiDAR scan. ``scan_id`` is the upsert key."""
    kind: ClassVar[SensorKind] = SensorKind.LIDAR

    scan_id: str
    points: Tuple[LidarPoint, ...] = field(default_factory=tuple)
    timestamp_ms: float = 0.0

    def as_array(self) -> np.ndarray:
        """Return the points as an Nx3 (x, y, z) array."""
        if not self.points:
            return np.empty((0, 3))
        return np.array([(p.x, p.y, p.z) for p in self.points], dtype=float)

    @classmethod
    def from_array(cls, scan_id: str, xyz: np.ndarray, timestamp_ms: float = 0.0) -> 'LidarScan':
        """Build a scan from an Nx3 array."""
        points = tuple(LidarPoint(float(x), float(y), float(z)) for x, y, z in xyz)
        return cls(scan_id=scan_id, points=points, timestamp_ms=timestamp_ms)


SensorSample = Union[GnssSample, BarometricSample, InertialSample, LidarScan]


def _vec3(data: Optional[dict]) -> Optional[Vec3]:
    if data is None:
        return None
    return Vec3(float(data["x"]), float(data["y"]), float(data["z"]))


def sample_from_dict(kind: str, data: dict) -> SensorSample:
    """Rebuild a sample from its recorded dictionary form.

    Missing keys raise ``KeyError``: all fields of a present sample are
    required.
    """
    kind = SensorKind(kind)

    if kind is SensorKind.GNSS:
        return GnssSample(
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            elevation_m=float(data["elevation_m"]),
            horizontal_accuracy_m=float(data["horizontal_accuracy_m"]),
            timestamp_ms=float(data["timestamp_ms"]),
        )
    if kind is SensorKind.BAROMETER:
        return BarometricSample(
            pressure_hpa=float(data["pressure_hpa"]),
            temperature_c=float(data["temperature_c"]),
            relative_altitude_m=float(data["relative_altitude_m"]),
            timestamp_ms=float(data["timestamp_ms"]),
        )
    if kind is SensorKind.IMU:
        o = data["orientation"]
        return InertialSample(
            acceleration=_vec3(data["acceleration"]),
            gyroscope=_vec3(data["gyroscope"]),
            orientation=Orientation(float(o["pitch"]), float(o["roll"]), float(o["yaw"])),
            timestamp_ms=float(data["timestamp_ms"]),
            magnetometer=_vec3(data.get("magnetometer")),
        )
    if kind is SensorKind.LIDAR:
        points = tuple(
            LidarPoint(
                float(p["x"]), float(p["y"]), float(p["z"]),
                None if p.get("intensity") is None else float(p["intensity"]),
            )
            for p in data["points"]
        )
        return LidarScan(
            scan_id=str(data["scan_id"]),
            points=points,
            timestamp_ms=float(data["timestamp_ms"]),
        )

    raise TypeError(f"Unhandled sensor kind: {kind}")


def sample_to_dict(sample: SensorSample) -> dict:
    """Dictionary form of a sample, inverse of ``sample_from_dict``."""
    def vec(v: Optional[Vec3]) -> Optional[dict]:
        return None if v is None else {"x": v.x, "y": v.y, "z": v.z}

    if isinstance(sample, GnssSample):
        return {
            "latitude": sample.latitude,
            "longitude": sample.longitude,
            "elevation_m": sample.elevation_m,
            "horizontal_accuracy_m": sample.horizontal_accuracy_m,
            "timestamp_ms": sample.timestamp_ms,
        }
    if isinstance(sample, BarometricSample):
        return {
            "pressure_hpa": sample.pressure_hpa,
            "temperature_c": sample.temperature_c,
            "relative_altitude_m": sample.relative_altitude_m,
            "timestamp_ms": sample.timestamp_ms,
        }
    if isinstance(sample, InertialSample):
        return {
            "acceleration": vec(sample.acceleration),
            "gyroscope": vec(sample.gyroscope),
            "magnetometer": vec(sample.magnetometer),
            "orientation": {
                "pitch": sample.orientation.pitch,
                "roll": sample.orientation.roll,
                "yaw": sample.orientation.yaw,
            },
            "timestamp_ms": sample.timestamp_ms,
        }
    if isinstance(sample, LidarScan):
        return {
            "scan_id": sample.scan_id,
            "points": [
                {"x": p.x, "y": p.y, "z": p.z, "intensity": p.intensity}
                for p in sample.points
            ],
            "timestamp_ms": sample.timestamp_ms,
        }

    raise TypeError(f"Not a sensor sample: {type(sample).__name__}")


def samples_in_frame(
    gnss: Optional[GnssSample] = None,
    barometer: Optional[BarometricSample] = None,
    imu: Optional[InertialSample] = None,
    lidar: Optional[LidarScan] = None,
) -> List[SensorSample]:
    """Collect the samples present in one processing tick, in routing order."""
    return [s for s in (gnss, barometer, imu, lidar) if s is not None]
