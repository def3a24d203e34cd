"""As-built floor plan reconstruction package.

This package fuses walkthrough sensor streams (GNSS, barometer, IMU,
LiDAR) into a building model and renders it as 2D plans and 3D meshes.

Modules:
- samples: Tagged sensor sample types
- faults: Fault log and state errors
- gnss_processor, barometer_processor, imu_processor, lidar_processor: Per-sensor validation
- wall_extractor: RANSAC wall, corner and opening extraction
- preprocessor: Point-cloud merge, outlier removal, normalization
- floor_segmenter: Height-cluster floor grouping
- building: Building data model
- room_mapper: Session state machine and room stitching
- geometry: Sketch2D / Model3D generation
- map_exporter: JSON, GeoJSON, OBJ and DXF export
- building_mapper: Session facade
- replay: Walkthrough recording replay CLI
"""

from .samples import (
    SensorKind, Vec3, Orientation, GnssSample, BarometricSample,
    InertialSample, LidarPoint, LidarScan, SensorSample,
    sample_from_dict, sample_to_dict,
)
from .faults import FaultLog, SensorFault, MappingStateError, SensorValidationError
from .config import MapperConfig, load_config
from .gnss_processor import GnssProcessor
from .barometer_processor import BarometerProcessor
from .imu_processor import ImuProcessor
from .lidar_processor import LidarProcessor
from .wall_extractor import WallExtractor, LineSegment, RoomFeatures, extract_room
from .preprocessor import PointCloudPreprocessor
from .floor_segmenter import FloorSegmenter
from .building import (
    Boundary, Door, Window, Room, Floor, GeoLocation, Building,
    Transition, TransitionKind, BuildingMap,
)
from .room_mapper import RoomMapper, MapperState, MappingState
from .geometry import GeometryBuilder, Sketch2D, Model3D, SketchResult
from .map_exporter import MapExporter, DxfPlanWriter
from .building_mapper import BuildingMapper

__all__ = [
    # Samples
    "SensorKind",
    "Vec3",
    "Orientation",
    "GnssSample",
    "BarometricSample",
    "InertialSample",
    "LidarPoint",
    "LidarScan",
    "SensorSample",
    "sample_from_dict",
    "sample_to_dict",
    # Faults
    "FaultLog",
    "SensorFault",
    "MappingStateError",
    "SensorValidationError",
    # Config
    "MapperConfig",
    "load_config",
    # Processors
    "GnssProcessor",
    "BarometerProcessor",
    "ImuProcessor",
    "LidarProcessor",
    # Reconstruction
    "WallExtractor",
    "LineSegment",
    "RoomFeatures",
    "extract_room",
    "PointCloudPreprocessor",
    "FloorSegmenter",
    # Building model
    "Boundary",
    "Door",
    "Window",
    "Room",
    "Floor",
    "GeoLocation",
    "Building",
    "Transition",
    "TransitionKind",
    "BuildingMap",
    # Session
    "RoomMapper",
    "MapperState",
    "MappingState",
    "BuildingMapper",
    # Output
    "GeometryBuilder",
    "Sketch2D",
    "Model3D",
    "SketchResult",
    "MapExporter",
    "DxfPlanWriter",
]
