"""Barometric altimeter processing for floor level estimation.

The first accepted reading becomes the baseline (pressure, relative
altitude). Floor levels are estimated from the altitude difference to the
baseline; a pressure step past the configured threshold signals that the
inspector changed floors.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional

from .config import BarometerConfig
from .faults import FaultLog, SensorValidationError
from .samples import BarometricSample, SensorKind


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves rounded up (2.5 -> 3, -2.5 -> -2)."""
    return int(math.floor(value + 0.5))


@dataclass
class BarometerProcessor:
    """Track barometric baseline and derive floor levels."""

    config: BarometerConfig = field(default_factory=BarometerConfig)
    fault_log: FaultLog = field(default_factory=FaultLog)

    _last_valid: Optional[BarometricSample] = None
    _baseline_pressure: Optional[float] = None
    _baseline_altitude: Optional[float] = None

    def process_reading(self, sample: BarometricSample) -> Optional[BarometricSample]:
        """Accept or reject one reading; rejected readings return the last good one."""
        try:
            self.validate(sample)
        except SensorValidationError as e:
            self.fault_log.record(
                SensorKind.BAROMETER, e.code, str(e),
                timestamp_ms=sample.timestamp_ms,
                has_baseline=self.has_baseline,
            )
            return self._last_valid

        if not self.has_baseline:
            self._baseline_pressure = sample.pressure_hpa
            self._baseline_altitude = sample.relative_altitude_m

        self._last_valid = sample
        return sample

    def validate(self, sample: BarometricSample) -> None:
        if not math.isfinite(sample.pressure_hpa) or sample.pressure_hpa <= 0:
            raise SensorValidationError(
                "BARO_INVALID_PRESSURE", f"Pressure must be positive: {sample.pressure_hpa} hPa"
            )
        cfg = self.config
        if not (math.isfinite(sample.temperature_c)
                and cfg.min_temperature_c <= sample.temperature_c <= cfg.max_temperature_c):
            raise SensorValidationError(
                "BARO_INVALID_TEMPERATURE",
                f"Temperature {sample.temperature_c} °C outside "
                f"[{cfg.min_temperature_c}, {cfg.max_temperature_c}]",
            )
        if not math.isfinite(sample.relative_altitude_m):
            raise SensorValidationError(
                "BARO_INVALID_ALTITUDE",
                f"Relative altitude is not finite: {sample.relative_altitude_m}",
            )

    @property
    def has_baseline(self) -> bool:
        return self._baseline_pressure is not None

    @property
    def last_reading(self) -> Optional[BarometricSample]:
        return self._last_valid

    @property
    def baseline_pressure(self) -> Optional[float]:
        return self._baseline_pressure

    @property
    def baseline_altitude(self) -> Optional[float]:
        return self._baseline_altitude

    def reset_baseline(
        self,
        pressure_hpa: Optional[float] = None,
        altitude_m: Optional[float] = None,
    ) -> None:
        """Set the baseline explicitly, or clear it when called without a pressure.

        A cleared baseline is taken from the next accepted reading.
        """
        if pressure_hpa is None:
            self._baseline_pressure = None
            self._baseline_altitude = None
            return

        if altitude_m is None:
            altitude_m = self._last_valid.relative_altitude_m if self._last_valid else 0.0
        self._baseline_pressure = pressure_hpa
        self._baseline_altitude = altitude_m

    def get_relative_altitude(self) -> Optional[float]:
        """Last accepted relative altitude in meters."""
        return self._last_valid.relative_altitude_m if self._last_valid else None

    def estimate_floor_level(self) -> Optional[int]:
        """Floor index relative to the baseline floor, or None without a baseline."""
        if not self.has_baseline or self._last_valid is None:
            return None
        delta = self._last_valid.relative_altitude_m - self._baseline_altitude
        return round_half_up(delta / self.config.floor_height_m)

    def has_floor_changed(self, new_pressure: float, reference: Optional[float] = None) -> bool:
        """True if ``new_pressure`` differs from the reference by the floor-change step.

        The reference defaults to the baseline pressure.
        """
        if reference is None:
            reference = self._baseline_pressure
        if reference is None:
            return False
        return abs(new_pressure - reference) >= self.config.floor_change_hpa - 1e-9
