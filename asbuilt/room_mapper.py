"""Room mapper: fuses sensor samples into a Building during a walkthrough.

State machine:
    IDLE --start_mapping--> MAPPING --complete_mapping--> COMPLETED

One mapper instance runs one session. Samples are routed to their sensor
processor; a rejected sample is a fault, never an exception. Floor changes
come from the barometer and from scan height clusters; a scan taken on
another storey always moves the mapper to that storey. Each successful
boundary detection either stitches into an existing room on the current
floor or opens a new one.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from scipy.spatial.distance import cdist

from .barometer_processor import BarometerProcessor
from .building import (
    Boundary, Building, BuildingMap, Door, Floor, GeoLocation, Room,
    Transition, TransitionKind, Window, point_distance,
)
from .config import MapperConfig
from .faults import MAPPING_ERROR, NO_LOCATION, FaultLog, MappingStateError, SensorFault, now_ms
from .floor_segmenter import FloorSegmenter
from .gnss_processor import GnssProcessor
from .imu_processor import ImuProcessor
from .lidar_processor import LidarProcessor
from .samples import (
    BarometricSample, GnssSample, InertialSample, LidarScan, SensorKind,
    SensorSample, samples_in_frame,
)

logger = logging.getLogger(__name__)


class MapperState(str, Enum):
    IDLE = "idle"
    MAPPING = "mapping"
    COMPLETED = "completed"


@dataclass
class MappingState:
    """Read-only view of a mapper's progress."""
    state: MapperState
    session_id: Optional[str] = None
    current_floor: int = 0
    current_room_id: Optional[str] = None
    room_count: int = 0
    floor_count: int = 0
    transition_count: int = 0
    fault_count: int = 0
    location_set: bool = False


def _same_opening(a, b, tolerance: float) -> bool:
    """Openings match when both endpoints coincide within tolerance, in either order."""
    forward = point_distance(a.start, b.start) <= tolerance and point_distance(a.end, b.end) <= tolerance
    reverse = point_distance(a.start, b.end) <= tolerance and point_distance(a.end, b.start) <= tolerance
    return forward or reverse


@dataclass
class RoomMapper:
    """Accumulate rooms, floors and transitions for one mapping session."""

    config: MapperConfig = field(default_factory=MapperConfig)
    fault_log: FaultLog = field(default_factory=FaultLog)

    gnss: Optional[GnssProcessor] = None
    barometer: Optional[BarometerProcessor] = None
    imu: Optional[ImuProcessor] = None
    lidar: Optional[LidarProcessor] = None
    segmenter: Optional[FloorSegmenter] = None

    _state: MapperState = MapperState.IDLE
    _session_id: Optional[str] = None
    _building: Optional[Building] = None
    _current_floor: int = 0
    _current_room: Optional[Room] = None
    _floor_reference_pressure: Optional[float] = None
    _transitions: List[Transition] = field(default_factory=list)
    _room_counter: int = 0
    _started_ms: float = 0.0

    def __post_init__(self):
        cfg = self.config
        if self.gnss is None:
            self.gnss = GnssProcessor(cfg.gnss, self.fault_log)
        if self.barometer is None:
            self.barometer = BarometerProcessor(cfg.barometer, self.fault_log)
        if self.imu is None:
            self.imu = ImuProcessor(cfg.imu, self.fault_log)
        if self.lidar is None:
            self.lidar = LidarProcessor(cfg.lidar, self.fault_log)
        if self.segmenter is None:
            self.segmenter = FloorSegmenter.from_config(cfg.segmenter, self.lidar.extractor)

    # =========================================================================
    # Session lifecycle
    # =========================================================================

    def start_mapping(self, session_id: str, name: Optional[str] = None) -> Building:
        """Begin a session with an empty building whose location is pending."""
        if self._state is not MapperState.IDLE:
            raise MappingStateError(f"Cannot start mapping in state {self._state.value}")

        self._session_id = session_id
        self._building = Building(id=session_id, name=name)
        self._started_ms = now_ms()
        self._state = MapperState.MAPPING
        logger.info(f"Mapping started: {session_id}")
        return self._building

    def process_sensor_data(
        self,
        gnss: Optional[GnssSample] = None,
        barometer: Optional[BarometricSample] = None,
        imu: Optional[InertialSample] = None,
        lidar: Optional[LidarScan] = None,
    ) -> None:
        """Route whichever samples are present this tick."""
        if self._state is not MapperState.MAPPING:
            raise MappingStateError(f"Cannot process sensor data in state {self._state.value}")

        for sample in samples_in_frame(gnss, barometer, imu, lidar):
            self.route(sample)

    def route(self, sample: SensorSample) -> None:
        """Dispatch one sample to its handler.

        Unknown sample types raise ``TypeError``. Errors inside a handler are
        recorded as MAPPING_ERROR faults.
        """
        if isinstance(sample, GnssSample):
            handler = self._handle_gnss
        elif isinstance(sample, BarometricSample):
            handler = self._handle_barometer
        elif isinstance(sample, InertialSample):
            handler = self._handle_imu
        elif isinstance(sample, LidarScan):
            handler = self._handle_lidar
        else:
            raise TypeError(f"Not a sensor sample: {type(sample).__name__}")

        try:
            handler(sample)
        except Exception as e:
            logger.exception(f"Failed to process {sample.kind.value} sample")
            self.fault_log.record(
                sample.kind, MAPPING_ERROR, f"{type(e).__name__}: {e}",
                current_floor=self._current_floor,
                current_room=self._current_room.id if self._current_room else None,
            )

    def complete_mapping(self) -> BuildingMap:
        """Finish the session and return the frozen result."""
        if self._state is not MapperState.MAPPING:
            raise MappingStateError(f"Cannot complete mapping in state {self._state.value}")

        building = self._building
        if building.location is None:
            self.fault_log.record(
                SensorKind.GNSS, NO_LOCATION,
                "No valid GNSS fix during the session; building location unknown",
            )

        building.freeze()
        completed_ms = now_ms()
        self._state = MapperState.COMPLETED

        result = BuildingMap(
            building=building,
            transitions=tuple(self._transitions),
            completed_ms=completed_ms,
            metadata={
                'session_id': self._session_id,
                'started_ms': self._started_ms,
                'duration_ms': completed_ms - self._started_ms,
                'room_count': building.room_count,
                'floor_count': building.floor_count,
                'transition_count': len(self._transitions),
                'scan_count': len(self.lidar.scans),
                'fault_count': len(self.fault_log),
            },
        )
        logger.info(
            f"Mapping completed: {building.room_count} rooms on "
            f"{building.floor_count} floors, {len(self._transitions)} transitions"
        )
        return result

    # =========================================================================
    # Read access (any state)
    # =========================================================================

    def get_state(self) -> MappingState:
        building = self._building
        return MappingState(
            state=self._state,
            session_id=self._session_id,
            current_floor=self._current_floor,
            current_room_id=self._current_room.id if self._current_room else None,
            room_count=building.room_count if building else 0,
            floor_count=building.floor_count if building else 0,
            transition_count=len(self._transitions),
            fault_count=len(self.fault_log),
            location_set=building is not None and building.location is not None,
        )

    def get_errors(self) -> List[SensorFault]:
        return self.fault_log.faults

    @property
    def state(self) -> MapperState:
        return self._state

    @property
    def building(self) -> Optional[Building]:
        return self._building

    @property
    def transitions(self) -> List[Transition]:
        return list(self._transitions)

    @property
    def current_floor(self) -> int:
        return self._current_floor

    @property
    def scans(self) -> List[LidarScan]:
        return self.lidar.scans

    # =========================================================================
    # Sample handlers
    # =========================================================================

    def _handle_gnss(self, sample: GnssSample) -> None:
        accepted = self.gnss.process_reading(sample)
        if accepted is not sample or self._building.location is not None:
            return
        self._building.location = GeoLocation(
            latitude=sample.latitude,
            longitude=sample.longitude,
            elevation_m=sample.elevation_m,
        )
        logger.info(f"Building location set: {sample.latitude:.6f}, {sample.longitude:.6f}")

    def _handle_barometer(self, sample: BarometricSample) -> None:
        accepted = self.barometer.process_reading(sample)
        if accepted is not sample:
            return

        if self._floor_reference_pressure is None:
            self._floor_reference_pressure = self.barometer.baseline_pressure

        if not self.barometer.has_floor_changed(sample.pressure_hpa, reference=self._floor_reference_pressure):
            return

        level = self.barometer.estimate_floor_level()
        if level is not None and level != self._current_floor:
            self._change_floor(level, source="barometer")
            self._floor_reference_pressure = sample.pressure_hpa

    def _handle_imu(self, sample: InertialSample) -> None:
        self.imu.process_reading(sample)

    def _handle_lidar(self, scan: LidarScan) -> None:
        accepted = self.lidar.process_reading(scan)
        if accepted is not scan:
            return

        points = scan.as_array()
        floor_z = float(points[:, 2].min())
        if self.config.segmenter.use_height_clusters:
            self._check_height_cluster(points, floor_z)

        features = self.lidar.detect_features()
        if features.boundary is None:
            return

        ceiling = features.boundary.height - floor_z
        self._commit_room(features.boundary, features.doors, features.windows, ceiling, scan.timestamp_ms)

    # =========================================================================
    # Floors, rooms, transitions
    # =========================================================================

    def _check_height_cluster(self, points: np.ndarray, floor_z: float) -> None:
        """Switch to the floor a scan was taken on when it is not the current one.

        The scan's own base level wins over the barometric estimate. The
        barometer reference moves to the latest pressure so the next reading
        is compared against the floor just entered.
        """
        level = self.segmenter.base_level(points)
        if level is None or level == self._current_floor:
            return

        self._change_floor(level, source="height clusters", elevation_m=floor_z)
        reading = self.barometer.last_reading
        if reading is not None:
            self._floor_reference_pressure = reading.pressure_hpa

    def _floor_elevation(self, level: int) -> float:
        altitude = self.barometer.get_relative_altitude()
        if self.barometer.has_baseline and altitude is not None:
            return altitude - self.barometer.baseline_altitude
        return level * self.segmenter.floor_height

    def _change_floor(self, level: int, source: str, elevation_m: Optional[float] = None) -> Floor:
        logger.info(f"Floor change {self._current_floor} -> {level} ({source})")
        self._current_floor = level
        if elevation_m is None:
            elevation_m = self._floor_elevation(level)
        return self._building.ensure_floor(level, elevation_m)

    def find_stitch_target(self, boundary: Boundary) -> Optional[Room]:
        """Existing room on the current floor that this boundary re-detects.

        A room matches when its centroid is within the stitch tolerance of
        the new centroid, or when every new corner lies within tolerance of
        one of its corners.
        """
        if not self.config.stitching.enabled:
            return None
        floor = self._building.get_floor(self._current_floor)
        if floor is None or not floor.rooms:
            return None

        tolerance = self.config.stitching.stitch_tolerance_m
        new_corners = np.asarray(boundary.corners, dtype=float)
        for room in floor.rooms:
            if point_distance(room.centroid, boundary.centroid) <= tolerance:
                return room
            distances = cdist(new_corners, np.asarray(room.boundary.corners, dtype=float))
            if np.all(distances.min(axis=1) <= tolerance):
                return room
        return None

    def _merge_openings(self, existing: List, detected: Sequence) -> None:
        tolerance = self.config.stitching.door_match_tolerance_m
        for opening in detected:
            if not any(_same_opening(opening, known, tolerance) for known in existing):
                existing.append(opening)

    def _commit_room(
        self,
        boundary: Boundary,
        doors: List[Door],
        windows: List[Window],
        ceiling: float,
        timestamp_ms: float,
    ) -> Room:
        floor = self._building.ensure_floor(self._current_floor, self._floor_elevation(self._current_floor))

        room = self.find_stitch_target(boundary)
        if room is not None:
            room.boundary = boundary
            room.ceiling_height = max(room.ceiling_height, ceiling)
            self._merge_openings(room.doors, doors)
            self._merge_openings(room.windows, windows)
            room.detections += 1
            logger.debug(f"Stitched detection into {room.id} ({room.detections} detections)")
        else:
            self._room_counter += 1
            room = Room(
                id=f"room_{self._room_counter}",
                floor_level=self._current_floor,
                boundary=boundary,
                doors=list(doors),
                windows=list(windows),
                ceiling_height=ceiling,
                entry_position=self.imu.get_position(),
                created_ms=timestamp_ms,
            )
            floor.rooms.append(room)
            logger.info(
                f"New room {room.id} on floor {room.floor_level}: "
                f"{len(boundary.corners)} corners, {boundary.area:.1f} m², "
                f"{len(room.doors)} doors, {len(room.windows)} windows"
            )

        if room is not self._current_room:
            if self._current_room is not None:
                self._record_transition(self._current_room, room, timestamp_ms)
            if room.detections == 1:
                self.imu.reset_position()
            self._current_room = room

        return room

    def shared_door(self, a: Room, b: Room) -> Optional[Door]:
        """A door of ``a`` that matches a door of ``b``, if any."""
        tolerance = self.config.stitching.door_match_tolerance_m
        for door in a.doors:
            for other in b.doors:
                if _same_opening(door, other, tolerance):
                    return door
        return None

    def _record_transition(self, source: Room, target: Room, timestamp_ms: float) -> Transition:
        points = (self.imu.get_position(),)
        if source.floor_level != target.floor_level:
            kind = TransitionKind.FLOOR_CHANGE
        else:
            door = self.shared_door(source, target)
            if door is not None:
                kind = TransitionKind.DOOR
                mid = ((door.start[0] + door.end[0]) / 2, (door.start[1] + door.end[1]) / 2)
                floor = self._building.get_floor(target.floor_level)
                points = ((mid[0], mid[1], floor.elevation_m if floor else 0.0),)
            else:
                kind = TransitionKind.PASSAGE

        transition = Transition(
            kind=kind,
            from_room_id=source.id,
            from_floor=source.floor_level,
            to_room_id=target.id,
            to_floor=target.floor_level,
            points=points,
            timestamp_ms=timestamp_ms,
        )
        self._transitions.append(transition)
        logger.info(f"Transition {kind.value}: {source.id} -> {target.id}")
        return transition

    def describe(self) -> Dict[str, Any]:
        """Summary dict for logs and CLI output."""
        state = self.get_state()
        return {
            'state': state.state.value,
            'session_id': state.session_id,
            'current_floor': state.current_floor,
            'current_room': state.current_room_id,
            'rooms': state.room_count,
            'floors': state.floor_count,
            'transitions': state.transition_count,
            'faults': state.fault_count,
        }
