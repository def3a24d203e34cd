"""LiDAR scan validation and room feature detection.

Scans are upserted by ``scan_id``. Detection always runs on the most
recently accepted scan; a detection step that raises is logged to the fault
log and reported as "nothing found" so a walkthrough never aborts on one
bad scan.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from .building import Boundary, Door, Window
from .config import LidarConfig
from .faults import DETECTION_ERROR, FaultLog, SensorValidationError
from .samples import LidarScan, SensorKind
from .wall_extractor import RoomFeatures, WallExtractor

logger = logging.getLogger(__name__)


@dataclass
class LidarProcessor:
    """Keep validated scans and run wall/opening detection on the latest one."""

    config: LidarConfig = field(default_factory=LidarConfig)
    fault_log: FaultLog = field(default_factory=FaultLog)

    _scans: Dict[str, LidarScan] = field(default_factory=dict)
    _last_valid: Optional[LidarScan] = None
    _extractor: Optional[WallExtractor] = None

    def __post_init__(self):
        if self._extractor is None:
            self._extractor = WallExtractor.from_config(self.config)

    @property
    def extractor(self) -> WallExtractor:
        return self._extractor

    @property
    def scans(self) -> List[LidarScan]:
        """Accepted scans in first-seen order; re-sent ids keep their slot."""
        return list(self._scans.values())

    @property
    def last_scan(self) -> Optional[LidarScan]:
        return self._last_valid

    def process_reading(self, scan: LidarScan) -> Optional[LidarScan]:
        """Validate and upsert one scan; rejected scans return the last valid one."""
        try:
            self.validate(scan)
        except SensorValidationError as e:
            self.fault_log.record(
                SensorKind.LIDAR, e.code, str(e),
                timestamp_ms=scan.timestamp_ms if math.isfinite(scan.timestamp_ms) else None,
                scan_id=scan.scan_id,
            )
            return self._last_valid

        self._scans[scan.scan_id] = scan
        self._last_valid = scan
        return scan

    def validate(self, scan: LidarScan) -> None:
        if not isinstance(scan.scan_id, str) or not scan.scan_id:
            raise SensorValidationError("LIDAR_INVALID_SCAN_ID", "Scan id must be a non-empty string")
        if not math.isfinite(scan.timestamp_ms):
            raise SensorValidationError("LIDAR_INVALID_TIMESTAMP", f"Timestamp is not finite: {scan.timestamp_ms}")
        if not scan.points:
            raise SensorValidationError("LIDAR_EMPTY_SCAN", f"Scan {scan.scan_id} has no points")
        bad = sum(1 for p in scan.points if not p.is_finite())
        if bad:
            raise SensorValidationError(
                "LIDAR_INVALID_POINTS", f"Scan {scan.scan_id} has {bad} non-finite points"
            )

    def clear_scan(self, scan_id: str) -> bool:
        """Forget a stored scan. Returns False if the id is unknown."""
        scan = self._scans.pop(scan_id, None)
        if scan is None:
            return False
        if self._last_valid is scan:
            self._last_valid = None
        return True

    def _latest_points(self) -> Optional[np.ndarray]:
        if self._last_valid is None:
            return None
        return self._last_valid.as_array()

    def _detection_failed(self, step: str, error: Exception) -> None:
        logger.error(f"{step} failed: {error}")
        self.fault_log.record(
            SensorKind.LIDAR, DETECTION_ERROR, f"{step} failed: {error}",
            scan_id=self._last_valid.scan_id if self._last_valid else None,
            error_type=type(error).__name__,
        )

    def detect_boundary(self) -> Optional[Boundary]:
        """Room outline from the latest scan, or None."""
        points = self._latest_points()
        if points is None:
            return None
        try:
            return self._extractor.detect_boundary(points)
        except Exception as e:
            self._detection_failed("Boundary detection", e)
            return None

    def detect_doors(self) -> List[Door]:
        points = self._latest_points()
        if points is None:
            return []
        try:
            return self._extractor.detect_doors(points)
        except Exception as e:
            self._detection_failed("Door detection", e)
            return []

    def detect_windows(self) -> List[Window]:
        points = self._latest_points()
        if points is None:
            return []
        try:
            return self._extractor.detect_windows(points)
        except Exception as e:
            self._detection_failed("Window detection", e)
            return []

    def detect_features(self) -> RoomFeatures:
        """Boundary and openings from one wall detection pass over the latest scan."""
        points = self._latest_points()
        if points is None:
            return RoomFeatures()
        try:
            return self._extractor.extract_room(points)
        except Exception as e:
            self._detection_failed("Room feature extraction", e)
            return RoomFeatures()
