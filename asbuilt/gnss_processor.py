"""GNSS fix validation.

Keeps the last accepted fix; a rejected fix is logged to the fault log and
the previous fix (or None) is returned in its place.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional

from .config import GnssConfig
from .faults import FaultLog, SensorValidationError
from .samples import GnssSample, SensorKind


@dataclass
class GnssProcessor:
    """Validate GNSS fixes and track the last known good location."""

    config: GnssConfig = field(default_factory=GnssConfig)
    fault_log: FaultLog = field(default_factory=FaultLog)

    _last_valid: Optional[GnssSample] = None

    def process_reading(self, sample: GnssSample) -> Optional[GnssSample]:
        """Accept or reject one fix.

        Returns the sample unchanged when accepted, otherwise the previously
        accepted fix (None if there is none).
        """
        try:
            self.validate(sample)
        except SensorValidationError as e:
            self.fault_log.record(
                SensorKind.GNSS, e.code, str(e),
                timestamp_ms=sample.timestamp_ms,
                has_last_valid=self._last_valid is not None,
            )
            return self._last_valid

        self._last_valid = sample
        return sample

    def validate(self, sample: GnssSample) -> None:
        """Raise ``SensorValidationError`` if the fix is unusable."""
        accuracy = sample.horizontal_accuracy_m
        if not math.isfinite(accuracy) or accuracy > self.config.max_horizontal_accuracy_m:
            raise SensorValidationError(
                "GNSS_LOW_ACCURACY",
                f"Horizontal accuracy {accuracy} m exceeds "
                f"{self.config.max_horizontal_accuracy_m} m",
            )
        if not (math.isfinite(sample.latitude) and -90.0 <= sample.latitude <= 90.0):
            raise SensorValidationError(
                "GNSS_INVALID_COORDINATES", f"Latitude out of range: {sample.latitude}"
            )
        if not (math.isfinite(sample.longitude) and -180.0 <= sample.longitude <= 180.0):
            raise SensorValidationError(
                "GNSS_INVALID_COORDINATES", f"Longitude out of range: {sample.longitude}"
            )
        if not math.isfinite(sample.elevation_m):
            raise SensorValidationError(
                "GNSS_INVALID_ELEVATION", f"Elevation is not finite: {sample.elevation_m}"
            )

    def get_current_location(self) -> Optional[GnssSample]:
        """Last accepted fix, or None if none has been accepted yet."""
        return self._last_valid
