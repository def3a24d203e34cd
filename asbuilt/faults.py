"""Sensor fault records and the session fault log.

Faults are data, not exceptions: a rejected sample or failed detection step
is appended to the session's ``FaultLog`` and processing continues. The log
is owned by whoever starts the session and handed to every processor.
"""
from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

from .samples import SensorKind

logger = logging.getLogger(__name__)


class MappingStateError(RuntimeError):
    """Raised when the mapping API is used in the wrong session state."""


class SensorValidationError(ValueError):
    """Raised inside a processor when a sample fails validation."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code


# Fault codes
VALIDATION_ERROR = "VALIDATION_ERROR"
DETECTION_ERROR = "DETECTION_ERROR"
MAPPING_ERROR = "MAPPING_ERROR"
EXPORT_FAILED = "EXPORT_FAILED"
GEOMETRY_FAILED = "GEOMETRY_FAILED"
NO_LOCATION = "NO_LOCATION"


def now_ms() -> float:
    """Current wall-clock time in epoch milliseconds."""
    return time.time() * 1000.0


@dataclass(frozen=True)
class SensorFault:
    """One entry in the fault log."""
    sensor_kind: str
    code: str
    message: str
    timestamp_ms: float
    context: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class FaultLog:
    """Append-only list of faults for one mapping session."""

    _faults: List[SensorFault] = field(default_factory=list)

    def record(
        self,
        sensor_kind: SensorKind | str,
        code: str,
        message: str,
        timestamp_ms: Optional[float] = None,
        **context: Any,
    ) -> SensorFault:
        """Append a fault and return it."""
        kind = sensor_kind.value if isinstance(sensor_kind, SensorKind) else str(sensor_kind)
        fault = SensorFault(
            sensor_kind=kind,
            code=code,
            message=message,
            timestamp_ms=now_ms() if timestamp_ms is None else timestamp_ms,
            context=dict(context),
        )
        self._faults.append(fault)
        logger.warning(f"[{kind}] {code}: {message}")
        return fault

    @property
    def faults(self) -> List[SensorFault]:
        """Copy of the recorded faults, oldest first."""
        return list(self._faults)

    def for_kind(self, sensor_kind: SensorKind | str) -> List[SensorFault]:
        kind = sensor_kind.value if isinstance(sensor_kind, SensorKind) else str(sensor_kind)
        return [f for f in self._faults if f.sensor_kind == kind]

    def __len__(self) -> int:
        return len(self._faults)

    def to_list(self) -> List[dict]:
        return [f.to_dict() for f in self._faults]

    def save(self, path: Path | str) -> Path:
        """Write the log as a JSON list."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_list(), f, indent=2, default=str)
        return path
