"""Pytest configuration and shared fixtures."""

import pytest
import sys
from pathlib import Path

import numpy as np

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests that replay a full walkthrough"
    )


# ============================================================================
# Config and fault log
# ============================================================================

@pytest.fixture
def mapper_config():
    """MapperConfig with a fixed RANSAC seed."""
    from asbuilt.config import MapperConfig
    config = MapperConfig()
    config.lidar.ransac_seed = 7
    return config


@pytest.fixture
def fault_log():
    from asbuilt.faults import FaultLog
    return FaultLog()


@pytest.fixture
def sample_config_dict():
    """Partial configuration as dictionary."""
    return {
        "gnss": {"max_horizontal_accuracy_m": 5.0},
        "barometer": {"floor_height_m": 3.2, "floor_change_hpa": 0.25},
        "lidar": {"ransac_iterations": 200, "ransac_seed": 11},
        "stitching": {"enabled": False},
        "export": {"formats": ["json", "dxf"], "overwrite": False},
    }


# ============================================================================
# Point clouds
# ============================================================================

@pytest.fixture
def extractor():
    """Seeded WallExtractor with default thresholds."""
    from asbuilt.wall_extractor import WallExtractor
    return WallExtractor(seed=7)


@pytest.fixture
def synthetic_room():
    """5 x 4 m room with a door (bottom wall) and a window (top wall)."""
    from simulation.generate_synthetic import room_with_door_and_window
    return room_with_door_and_window()


@pytest.fixture
def room_points(synthetic_room):
    return synthetic_room.point_cloud()


@pytest.fixture
def plain_room():
    """Closed 5 x 4 m room with no openings."""
    from simulation.generate_synthetic import SyntheticRoom
    return SyntheticRoom()


# ============================================================================
# Sample factories
# ============================================================================

@pytest.fixture
def make_gnss():
    from asbuilt.samples import GnssSample

    def _make(latitude=-33.8688, longitude=151.2093, elevation_m=20.0,
              accuracy=4.0, timestamp_ms=1000.0):
        return GnssSample(
            latitude=latitude,
            longitude=longitude,
            elevation_m=elevation_m,
            horizontal_accuracy_m=accuracy,
            timestamp_ms=timestamp_ms,
        )
    return _make


@pytest.fixture
def make_baro():
    from asbuilt.samples import BarometricSample

    def _make(pressure_hpa=1013.25, altitude_m=0.0, temperature_c=21.0, timestamp_ms=1000.0):
        return BarometricSample(
            pressure_hpa=pressure_hpa,
            temperature_c=temperature_c,
            relative_altitude_m=altitude_m,
            timestamp_ms=timestamp_ms,
        )
    return _make


@pytest.fixture
def make_imu():
    from asbuilt.samples import InertialSample, Orientation, Vec3

    def _make(ax=0.0, ay=0.0, az=-9.81, timestamp_ms=1000.0,
              pitch=0.0, roll=0.0, yaw=0.0, gyro=(0.0, 0.0, 0.0), magnetometer=None):
        return InertialSample(
            acceleration=Vec3(ax, ay, az),
            gyroscope=Vec3(*gyro),
            orientation=Orientation(pitch, roll, yaw),
            timestamp_ms=timestamp_ms,
            magnetometer=magnetometer,
        )
    return _make


@pytest.fixture
def make_scan():
    from asbuilt.samples import LidarScan

    def _make(points, scan_id="scan_001", timestamp_ms=1000.0):
        return LidarScan.from_array(scan_id, np.asarray(points, dtype=float), timestamp_ms=timestamp_ms)
    return _make


# ============================================================================
# Building model
# ============================================================================

@pytest.fixture
def sample_building():
    """Two-storey building: a 5 x 4 m room with openings, a triangular room above."""
    from asbuilt.building import Boundary, Building, Door, Floor, GeoLocation, Room, Window

    ground = Room(
        id="room_1",
        floor_level=0,
        boundary=Boundary(corners=[(0.0, 0.0), (0.0, 4.0), (5.0, 4.0), (5.0, 0.0)], height=2.5),
        doors=[Door(start=(1.0, 0.0), end=(1.9, 0.0))],
        windows=[Window(start=(2.0, 4.0), end=(3.2, 4.0), sill_height=0.9)],
        ceiling_height=2.5,
    )
    upper = Room(
        id="room_2",
        floor_level=1,
        boundary=Boundary(corners=[(0.0, 0.0), (0.0, 4.0), (4.0, 0.0)], height=2.4),
        ceiling_height=2.4,
    )
    return Building(
        id="b1",
        name="Test Building",
        location=GeoLocation(latitude=-33.8688, longitude=151.2093, elevation_m=20.0),
        floors=[
            Floor(level=0, elevation_m=0.0, rooms=[ground]),
            Floor(level=1, elevation_m=3.0, rooms=[upper]),
        ],
    )


@pytest.fixture
def sketch_result(sample_building):
    from asbuilt.geometry import GeometryBuilder
    return GeometryBuilder().build_result(sample_building)
