"""Building mapper facade.

Owns one session at a time: a fresh RoomMapper and FaultLog per
``start_mapping`` call. Completion hands the frozen building to the geometry
builder and then to the exporter; a failing export is recorded as a fault
and never invalidates the returned BuildingMap.

Usage:
    mapper = BuildingMapper()
    mapper.start_mapping("site-42", "Warehouse")
    mapper.process_sensor_data(gnss=fix, lidar=scan)
    building_map = mapper.complete_mapping("artifacts/site-42")
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional

from .building import Building, BuildingMap, Room
from .config import MapperConfig
from .faults import EXPORT_FAILED, GEOMETRY_FAILED, FaultLog, MappingStateError, SensorFault
from .floor_segmenter import FloorSegmenter
from .geometry import GeometryBuilder, SketchResult
from .map_exporter import MapExporter
from .preprocessor import PointCloudPreprocessor
from .room_mapper import MapperState, MappingState, RoomMapper
from .samples import BarometricSample, GnssSample, InertialSample, LidarScan
from .wall_extractor import WallExtractor

logger = logging.getLogger(__name__)


@dataclass
class BuildingMapper:
    """Session facade over the room mapper, geometry builder and exporter.

    ``exporter`` may be any object with ``export(result, output_dir, base_name)``.
    """

    config: MapperConfig = field(default_factory=MapperConfig)
    exporter: Optional[object] = None
    geometry: GeometryBuilder = field(default_factory=GeometryBuilder)

    _mapper: Optional[RoomMapper] = None
    _fault_log: FaultLog = field(default_factory=FaultLog)
    _last_result: Optional[SketchResult] = None
    _exported: List[Path] = field(default_factory=list)

    def __post_init__(self):
        if self.exporter is None:
            self.exporter = MapExporter(self.config.export)

    # =========================================================================
    # Session
    # =========================================================================

    def start_mapping(self, session_id: str, name: Optional[str] = None) -> None:
        """Start a new session with its own room mapper and fault log."""
        if self.is_active:
            raise MappingStateError(f"Session {self._mapper.get_state().session_id} is still active")

        self._fault_log = FaultLog()
        self._mapper = RoomMapper(config=self.config, fault_log=self._fault_log)
        self._last_result = None
        self._exported = []
        self._mapper.start_mapping(session_id, name)

    def process_sensor_data(
        self,
        gnss: Optional[GnssSample] = None,
        barometer: Optional[BarometricSample] = None,
        imu: Optional[InertialSample] = None,
        lidar: Optional[LidarScan] = None,
    ) -> None:
        self._require_mapper().process_sensor_data(gnss=gnss, barometer=barometer, imu=imu, lidar=lidar)

    def complete_mapping(self, output_dir: Path | str) -> BuildingMap:
        """Complete the session, build the sketch and model, and export them.

        Returns:
            The frozen BuildingMap, whether or not the export succeeded
        """
        building_map = self._require_mapper().complete_mapping()
        building = building_map.building

        try:
            result = self.geometry.build_result(
                building,
                self._fault_log.faults,
                extra_metadata={'transition_count': len(building_map.transitions)},
            )
        except Exception as e:
            self._geometry_failed(e, building.id)
            return building_map

        self._last_result = result
        try:
            self._exported = list(self.exporter.export(result, output_dir, f"building_{building.id}"))
        except Exception as e:
            self._export_failed(e, output_dir)

        return building_map

    def export_current_state(self, output_dir: Path | str) -> List[Path]:
        """Export a lower-confidence snapshot of the session in progress."""
        if not self.is_active:
            raise MappingStateError("No mapping session in progress")

        snapshot = self._mapper.building.snapshot()
        try:
            result = self.geometry.build_result(
                snapshot,
                self._fault_log.faults,
                partial=True,
                extra_metadata={'mapping_state': self._mapper.describe()},
            )
        except Exception as e:
            self._geometry_failed(e, snapshot.id)
            return []

        try:
            return list(self.exporter.export(result, output_dir, f"building_{snapshot.id}_partial"))
        except Exception as e:
            self._export_failed(e, output_dir)
            return []

    def export_error_log(self, path: Path | str) -> Path:
        """Write the current session's faults as JSON, in any state."""
        return self._fault_log.save(path)

    def _geometry_failed(self, error: Exception, building_id: str) -> None:
        logger.error(f"Failed to build geometry for {building_id}: {error}")
        self._fault_log.record(
            "geometry", GEOMETRY_FAILED, f"{type(error).__name__}: {error}",
            building_id=building_id,
        )

    def _export_failed(self, error: Exception, output_dir: Path | str) -> None:
        logger.error(f"Failed to export map: {error}")
        self._fault_log.record(
            "export", EXPORT_FAILED, f"{type(error).__name__}: {error}",
            output_dir=str(output_dir),
        )

    def _require_mapper(self) -> RoomMapper:
        if self._mapper is None:
            raise MappingStateError("Mapping not started")
        return self._mapper

    # =========================================================================
    # Read access
    # =========================================================================

    @property
    def is_active(self) -> bool:
        return self._mapper is not None and self._mapper.state is MapperState.MAPPING

    @property
    def last_result(self) -> Optional[SketchResult]:
        """Sketch result of the last completed session, None if it failed."""
        return self._last_result

    @property
    def exported_paths(self) -> List[Path]:
        return list(self._exported)

    @property
    def room_mapper(self) -> Optional[RoomMapper]:
        return self._mapper

    def get_state(self) -> MappingState:
        if self._mapper is None:
            return MappingState(state=MapperState.IDLE)
        return self._mapper.get_state()

    def get_errors(self) -> List[SensorFault]:
        return self._fault_log.faults

    # =========================================================================
    # Offline reconstruction
    # =========================================================================

    def reconstruct_from_scans(
        self,
        scans: Iterable[LidarScan],
        building_id: str = "offline",
        name: Optional[str] = None,
    ) -> Building:
        """Rebuild a building from recorded scans without a live session.

        Pipeline:
        1. Merge scans, calibrate altitude, drop outliers, normalize to origin
        2. Segment the cloud into storeys
        3. Extract one room per storey

        Returns:
            Frozen Building; storeys without a detectable boundary are left empty
        """
        extractor = WallExtractor.from_config(self.config.lidar)
        preprocessor = PointCloudPreprocessor.from_config(self.config.preprocess)
        segmenter = FloorSegmenter.from_config(self.config.segmenter, extractor)

        points = preprocessor.process(scans)
        logger.info(f"Offline reconstruction from {len(points)} points")

        building = Building(id=building_id, name=name)
        room_number = 0
        for level, features in segmenter.detect_rooms(points).items():
            floor = building.ensure_floor(level, level * segmenter.floor_height)
            if features.boundary is None:
                continue
            room_number += 1
            floor.rooms.append(Room(
                id=f"room_{room_number}",
                floor_level=level,
                boundary=features.boundary,
                doors=features.doors,
                windows=features.windows,
                ceiling_height=features.boundary.height,
            ))

        building.freeze()
        logger.info(f"Reconstructed {building.room_count} rooms on {building.floor_count} floors")
        return building
