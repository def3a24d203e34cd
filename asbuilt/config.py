"""Configuration settings for the mapping pipeline."""

from dataclasses import dataclass, field, asdict, fields
from typing import List, Optional
import json
import os


@dataclass
class GnssConfig:
    """GNSS fix acceptance limits."""
    max_horizontal_accuracy_m: float = 10.0


@dataclass
class BarometerConfig:
    """Barometric floor estimation."""
    floor_height_m: float = 3.0  # storey height used for level estimation
    floor_change_hpa: float = 0.3  # pressure step that signals a floor change
    min_temperature_c: float = -20.0
    max_temperature_c: float = 50.0


@dataclass
class ImuConfig:
    """Dead reckoning parameters."""
    gravity: float = 9.81  # m/s²
    zero_velocity_threshold: float = 0.01  # m/s, per component
    magnetic_declination_deg: float = 0.0  # added to yaw


@dataclass
class LidarConfig:
    """Wall and opening detection."""
    ransac_iterations: int = 100
    ransac_seed: Optional[int] = None  # None = nondeterministic
    wall_thickness_m: float = 0.3  # inlier distance to a candidate wall line
    min_points_for_wall: int = 10
    min_walls: int = 3
    door_width_range: List[float] = field(default_factory=lambda: [0.7, 2.0])
    window_width_range: List[float] = field(default_factory=lambda: [0.6, 2.1])
    section_min_z: float = 1.0  # horizontal cut band used for opening gaps
    section_max_z: float = 2.0
    min_sill_points: int = 10


@dataclass
class PreprocessConfig:
    """Point-cloud preprocessing."""
    altitude_offset_m: float = 0.0
    outlier_neighbors: int = 10
    outlier_std_ratio: float = 2.0


@dataclass
class SegmenterConfig:
    """Height-cluster floor grouping."""
    floor_height_m: float = 2.7  # typical storey height in point clouds
    use_height_clusters: bool = True


@dataclass
class StitchingConfig:
    """Room stitching across a session."""
    enabled: bool = True
    stitch_tolerance_m: float = 0.5
    door_match_tolerance_m: float = 0.5


@dataclass
class ExportConfig:
    """Artifact export."""
    formats: List[str] = field(default_factory=lambda: ["json", "geojson", "obj", "dxf"])
    create_subdirs: bool = True
    overwrite: bool = True
    include_dimensions: bool = True


@dataclass
class MapperConfig:
    """Main mapping configuration."""
    gnss: GnssConfig = field(default_factory=GnssConfig)
    barometer: BarometerConfig = field(default_factory=BarometerConfig)
    imu: ImuConfig = field(default_factory=ImuConfig)
    lidar: LidarConfig = field(default_factory=LidarConfig)
    preprocess: PreprocessConfig = field(default_factory=PreprocessConfig)
    segmenter: SegmenterConfig = field(default_factory=SegmenterConfig)
    stitching: StitchingConfig = field(default_factory=StitchingConfig)
    export: ExportConfig = field(default_factory=ExportConfig)

    @classmethod
    def from_dict(cls, data: dict) -> "MapperConfig":
        """Build a config from a (possibly partial) dictionary.

        Unknown sections and keys are ignored; missing ones keep defaults.
        """
        config = cls()
        for section in fields(config):
            values = data.get(section.name)
            if not values:
                continue
            target = getattr(config, section.name)
            for k, v in values.items():
                if hasattr(target, k):
                    setattr(target, k, v)
        return config

    @classmethod
    def from_file(cls, path: str) -> "MapperConfig":
        """Load configuration from JSON file."""
        with open(path) as f:
            data = json.load(f)
        return cls.from_dict(data)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return asdict(self)

    def save(self, path: str):
        """Save configuration to JSON file."""
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)


# Default config file locations
DEFAULT_CONFIG_PATHS = [
    "/etc/asbuilt/mapper.json",
    os.path.expanduser("~/.config/asbuilt/mapper.json"),
    "./mapper_config.json",
]


def load_config(path: Optional[str] = None) -> MapperConfig:
    """Load configuration from file or return defaults."""
    if path and os.path.exists(path):
        return MapperConfig.from_file(path)

    for p in DEFAULT_CONFIG_PATHS:
        if os.path.exists(p):
            return MapperConfig.from_file(p)

    return MapperConfig()
