"""IMU dead reckoning.

This module integrates gravity-compensated acceleration into velocity and
position between samples. Integration is plain Euler and drifts; two rules
keep the drift bounded:

- Zero-velocity update: when every velocity component is below the
  threshold the velocity is clamped to exactly zero.
- The room mapper calls ``reset_position`` whenever a new room starts.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional, Tuple

from .config import ImuConfig
from .faults import FaultLog, SensorValidationError
from .samples import InertialSample, Orientation, SensorKind, Vec3


Vector = Tuple[float, float, float]


@dataclass
class ImuProcessor:
    """Integrate IMU samples into a dead-reckoned position.

    Gravity is resolved into the sensor frame from pitch (P) and roll (R):

        gx =  g * sin(P)
        gy = -g * cos(P) * sin(R)
        gz = -g * cos(P) * cos(R)

    and subtracted from the measured acceleration before integration. A
    device lying flat and at rest therefore reads (0, 0, -g) and integrates
    to zero.
    """

    config: ImuConfig = field(default_factory=ImuConfig)
    fault_log: FaultLog = field(default_factory=FaultLog)

    _last_valid: Optional[InertialSample] = None
    _last_timestamp_ms: Optional[float] = None
    _velocity: Vector = (0.0, 0.0, 0.0)
    _position: Vector = (0.0, 0.0, 0.0)

    def process_reading(self, sample: InertialSample) -> Optional[InertialSample]:
        """Validate and integrate one sample.

        Returns the sample when accepted, otherwise the last accepted one.
        """
        try:
            self.validate(sample)
        except SensorValidationError as e:
            self.fault_log.record(
                SensorKind.IMU, e.code, str(e),
                timestamp_ms=sample.timestamp_ms,
                position=self._position,
            )
            return self._last_valid

        if self._last_timestamp_ms is not None:
            dt = (sample.timestamp_ms - self._last_timestamp_ms) / 1000.0
            if dt > 0:
                self._integrate(sample, dt)

        self._last_timestamp_ms = sample.timestamp_ms
        self._last_valid = sample
        return sample

    def validate(self, sample: InertialSample) -> None:
        if not sample.acceleration.is_finite():
            raise SensorValidationError("IMU_INVALID_ACCELERATION", "Acceleration has non-finite components")
        if not sample.gyroscope.is_finite():
            raise SensorValidationError("IMU_INVALID_GYROSCOPE", "Gyroscope has non-finite components")
        if sample.magnetometer is not None and not sample.magnetometer.is_finite():
            raise SensorValidationError("IMU_INVALID_MAGNETOMETER", "Magnetometer has non-finite components")
        if not sample.orientation.is_finite():
            raise SensorValidationError("IMU_INVALID_ORIENTATION", "Orientation has non-finite components")
        if not math.isfinite(sample.timestamp_ms):
            raise SensorValidationError("IMU_INVALID_TIMESTAMP", f"Timestamp is not finite: {sample.timestamp_ms}")

    def gravity_in_sensor_frame(self, pitch: float, roll: float) -> Vector:
        """Gravity vector in the sensor frame for the given attitude (radians)."""
        g = self.config.gravity
        return (
            g * math.sin(pitch),
            -g * math.cos(pitch) * math.sin(roll),
            -g * math.cos(pitch) * math.cos(roll),
        )

    def compensate_gravity(self, sample: InertialSample) -> Vector:
        """Linear acceleration with gravity removed."""
        gx, gy, gz = self.gravity_in_sensor_frame(sample.orientation.pitch, sample.orientation.roll)
        a = sample.acceleration
        return (a.x - gx, a.y - gy, a.z - gz)

    def _integrate(self, sample: InertialSample, dt: float) -> None:
        ax, ay, az = self.compensate_gravity(sample)

        vx, vy, vz = self._velocity
        vx += ax * dt
        vy += ay * dt
        vz += az * dt

        px, py, pz = self._position
        self._position = (px + vx * dt, py + vy * dt, pz + vz * dt)

        threshold = self.config.zero_velocity_threshold
        if abs(vx) < threshold and abs(vy) < threshold and abs(vz) < threshold:
            vx = vy = vz = 0.0

        self._velocity = (vx, vy, vz)

    def get_position(self) -> Vector:
        """Dead-reckoned position in meters since the last reset."""
        return self._position

    def get_velocity(self) -> Vector:
        return self._velocity

    def get_orientation(self) -> Optional[Orientation]:
        """Last accepted attitude in degrees, yaw corrected for magnetic declination.

        Yaw is wrapped to [-180, 180).
        """
        if self._last_valid is None:
            return None
        o = self._last_valid.orientation
        yaw = math.degrees(o.yaw) + self.config.magnetic_declination_deg
        yaw = (yaw + 180.0) % 360.0 - 180.0
        return Orientation(pitch=math.degrees(o.pitch), roll=math.degrees(o.roll), yaw=yaw)

    def reset_position(self) -> None:
        """Zero position, velocity and the integration time anchor."""
        self._position = (0.0, 0.0, 0.0)
        self._velocity = (0.0, 0.0, 0.0)
        self._last_timestamp_ms = None

    def check_level(self, max_tilt_deg: float = 2.0) -> dict:
        """Check whether the device is held level, from the last accelerometer reading.

        Returns:
            Dict with tilt angles and level status
        """
        if self._last_valid is None:
            return {'level': None, 'error': 'No samples'}

        a: Vec3 = self._last_valid.acceleration
        magnitude = math.sqrt(a.x**2 + a.y**2 + a.z**2)
        if magnitude < 1e-9:
            return {'level': None, 'error': 'No accelerometer data'}

        # Device flat reads (0, 0, -g); tilt is the angle away from -Z
        roll_deg = math.degrees(math.atan2(-a.y, -a.z))
        pitch_deg = math.degrees(math.atan2(a.x, math.sqrt(a.y**2 + a.z**2)))

        return {
            'level': abs(roll_deg) < max_tilt_deg and abs(pitch_deg) < max_tilt_deg,
            'roll_deg': roll_deg,
            'pitch_deg': pitch_deg,
            'gravity_magnitude': magnitude,
        }
